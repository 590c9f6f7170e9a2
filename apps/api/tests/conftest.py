from __future__ import annotations

import uuid
from collections.abc import Callable, Generator
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import events
from app.core.config import get_settings
from app.core.database import Base
from app.delivery import models as delivery_models  # noqa: F401
from app.documents import models as documents_models  # noqa: F401
from app.parties.models import CRMCompany, CRMContact
from app.quotes.models import Quote, QuoteLineItem


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    events.published_events.clear()
    get_settings.cache_clear()


SeedQuote = Callable[..., uuid.UUID]


@pytest.fixture()
def seed_quote(db_session: Session) -> SeedQuote:
    """Insert a company, a contact and a quote; returns the quote id."""

    def _seed(
        quote_number: str = "Q-123456",
        *,
        status: str = "draft",
        rejection_reason: str | None = None,
        with_company: bool = True,
        contact_email: str | None = "client@example.com",
        items: list[tuple[str, str, str]] | None = None,
    ) -> uuid.UUID:
        company_id = uuid.uuid4()
        if with_company:
            db_session.add(
                CRMCompany(
                    id=company_id,
                    name="Acme Corp",
                    address="1 Market St",
                    city="Springfield",
                    state="IL",
                    zip_code="62701",
                    country="USA",
                )
            )
        contact = CRMContact(
            company_id=company_id if with_company else None,
            first_name="Jane",
            last_name="Client",
            email=contact_email,
        )
        db_session.add(contact)
        db_session.flush()

        rows = items if items is not None else [("Consulting", "10", "150.00"), ("Setup fee", "1", "250.00")]
        line_items = [
            QuoteLineItem(
                position=position,
                description=description,
                quantity=Decimal(quantity),
                unit_price=Decimal(unit_price),
                line_total=(Decimal(quantity) * Decimal(unit_price)).quantize(Decimal("0.01")),
            )
            for position, (description, quantity, unit_price) in enumerate(rows, start=1)
        ]
        subtotal = sum((item.line_total for item in line_items), Decimal("0"))
        tax = (subtotal * Decimal("0.10")).quantize(Decimal("0.01"))
        quote = Quote(
            quote_number=quote_number,
            title="Website redesign",
            status=status,
            deal_id=uuid.uuid4(),
            company_id=company_id,
            contact_id=contact.id,
            tax_rate=Decimal("0.10"),
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            rejection_reason=rejection_reason,
            created_at=datetime(2026, 10, 1, 9, 30, tzinfo=timezone.utc),
            line_items=line_items,
        )
        db_session.add(quote)
        db_session.commit()
        return quote.id

    return _seed
