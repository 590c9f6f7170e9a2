from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.context import reset_correlation_id, set_correlation_id
from app.quotes.errors import InvalidTransitionError, QuoteLockedError, QuoteNotFoundError
from app.quotes.models import Quote, QuoteStatusChange
from app.quotes.repository import SqlQuoteRepository, compute_totals, quantize_money
from app.quotes.schemas import QuoteCreate, QuoteLineItemInput, QuoteStatus


pytestmark = pytest.mark.anyio


def _item(description: str, quantity: str, unit_price: str) -> QuoteLineItemInput:
    return QuoteLineItemInput(description=description, quantity=Decimal(quantity), unit_price=Decimal(unit_price))


def test_compute_totals_rounds_half_up() -> None:
    subtotal, tax, total = compute_totals(
        [_item("A", "3", "33.335"), _item("B", "0.5", "0.01")],
        Decimal("0.10"),
    )

    assert subtotal == Decimal("100.01")
    assert tax == Decimal("10.00")
    assert total == Decimal("110.01")
    assert quantize_money(Decimal("0.005")) == Decimal("0.01")


def test_line_items_reject_negative_values() -> None:
    with pytest.raises(ValueError):
        _item("Refund", "-1", "10")
    with pytest.raises(ValueError):
        _item("Discount", "1", "-5")


async def test_add_creates_draft_with_computed_totals(db_session: Session) -> None:
    repository = SqlQuoteRepository(db_session)

    quote = await repository.add(
        QuoteCreate(
            quote_number="Q-500",
            title="Support plan",
            deal_id=uuid.uuid4(),
            company_id=uuid.uuid4(),
            contact_id=uuid.uuid4(),
            currency="eur",
            line_items=[_item("Support", "12", "99.99"), _item("Onboarding", "1", "500")],
        ),
        default_tax_rate=Decimal("0.10"),
    )

    assert quote.status == QuoteStatus.DRAFT
    assert quote.currency == "EUR"
    assert quote.subtotal == Decimal("1699.88")
    assert quote.tax == Decimal("169.99")
    assert quote.total == Decimal("1869.87")
    assert [(item.position, item.line_total) for item in quote.line_items] == [
        (1, Decimal("1199.88")),
        (2, Decimal("500.00")),
    ]


async def test_update_status_compare_and_swap(db_session: Session, seed_quote) -> None:
    quote_id = seed_quote(status="sent")
    repository = SqlQuoteRepository(db_session)

    token = set_correlation_id("corr-cas-1")
    try:
        updated = await repository.update_status(
            quote_id,
            QuoteStatus.APPROVED,
            expected_status=QuoteStatus.SENT,
            actor_id="manager-1",
        )
    finally:
        reset_correlation_id(token)

    assert updated.status == QuoteStatus.APPROVED
    change = db_session.scalars(select(QuoteStatusChange).where(QuoteStatusChange.quote_id == quote_id)).one()
    assert (change.from_status, change.to_status, change.actor_id, change.correlation_id) == (
        "sent",
        "approved",
        "manager-1",
        "corr-cas-1",
    )

    with pytest.raises(InvalidTransitionError) as exc_info:
        await repository.update_status(
            quote_id,
            QuoteStatus.REJECTED,
            expected_status=QuoteStatus.SENT,
            extra={"rejection_reason": "late"},
        )
    assert exc_info.value.current == "approved"
    reloaded = await repository.find_by_id(quote_id)
    assert reloaded is not None
    assert reloaded.status == QuoteStatus.APPROVED
    assert reloaded.rejection_reason is None


async def test_update_status_of_missing_quote(db_session: Session) -> None:
    with pytest.raises(QuoteNotFoundError):
        await SqlQuoteRepository(db_session).update_status(
            uuid.uuid4(),
            QuoteStatus.SENT,
            expected_status=QuoteStatus.DRAFT,
        )


async def test_update_status_rejects_unknown_extra_fields(db_session: Session, seed_quote) -> None:
    quote_id = seed_quote()

    with pytest.raises(ValueError, match="total"):
        await SqlQuoteRepository(db_session).update_status(
            quote_id,
            QuoteStatus.SENT,
            expected_status=QuoteStatus.DRAFT,
            extra={"total": Decimal("0")},
        )


async def test_update_status_writes_extras_atomically(db_session: Session, seed_quote) -> None:
    quote_id = seed_quote()

    updated = await SqlQuoteRepository(db_session).update_status(
        quote_id,
        QuoteStatus.SENT,
        expected_status=QuoteStatus.DRAFT,
        extra={"document_path": "quotes/Quote_Q_123456.pdf"},
    )

    assert updated.status == QuoteStatus.SENT
    assert updated.document_path == "quotes/Quote_Q_123456.pdf"


async def test_replace_line_items_recomputes_totals(db_session: Session, seed_quote) -> None:
    quote_id = seed_quote()
    repository = SqlQuoteRepository(db_session)

    updated = await repository.replace_line_items(quote_id, [_item("Audit", "2", "1000")])

    assert [item.description for item in updated.line_items] == ["Audit"]
    assert updated.subtotal == Decimal("2000.00")
    assert updated.tax == Decimal("200.00")
    assert updated.total == Decimal("2200.00")


async def test_replace_line_items_only_on_drafts(db_session: Session, seed_quote) -> None:
    quote_id = seed_quote(status="sent")

    with pytest.raises(QuoteLockedError):
        await SqlQuoteRepository(db_session).replace_line_items(quote_id, [_item("Audit", "1", "1")])


async def test_replace_line_items_loses_to_a_concurrent_send(db_session: Session, seed_quote) -> None:
    quote_id = seed_quote()

    class SendLandsMidEdit(SqlQuoteRepository):
        def _tax_rate(self, quote_id: uuid.UUID) -> Decimal | None:
            tax_rate = super()._tax_rate(quote_id)
            self.session.execute(update(Quote).where(Quote.id == quote_id).values(status="sent"))
            self.session.commit()
            return tax_rate

    with pytest.raises(QuoteLockedError) as exc_info:
        await SendLandsMidEdit(db_session).replace_line_items(quote_id, [_item("Changed", "1", "9999")])

    assert exc_info.value.status == "sent"
    stored = await SqlQuoteRepository(db_session).find_by_id(quote_id)
    assert stored is not None
    assert stored.status == QuoteStatus.SENT
    assert [item.description for item in stored.line_items] == ["Consulting", "Setup fee"]
    assert stored.total == Decimal("1925.00")
