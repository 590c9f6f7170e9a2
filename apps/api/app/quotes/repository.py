from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, selectinload
from starlette.concurrency import run_in_threadpool

from app.context import get_correlation_id
from app.quotes.errors import InvalidTransitionError, QuoteLockedError, QuoteNotFoundError
from app.quotes.models import Quote, QuoteLineItem, QuoteStatusChange, utcnow
from app.quotes.schemas import QuoteCreate, QuoteLineItemInput, QuoteRead, QuoteStatus, QuoteStatusChangeRead


MONEY_QUANTUM = Decimal("0.01")

# columns a status write may touch besides status itself
STATUS_EXTRA_FIELDS = frozenset({"document_path", "sent_at", "decided_at", "rejection_reason"})


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def compute_totals(items: Iterable[QuoteLineItemInput], tax_rate: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(subtotal, tax, total)`` rounded half-up to cents."""
    raw_subtotal = sum((item.quantity * item.unit_price for item in items), Decimal("0"))
    subtotal = quantize_money(raw_subtotal)
    tax = quantize_money(subtotal * tax_rate)
    return subtotal, tax, subtotal + tax


class QuoteRepository(Protocol):
    async def find_by_id(self, quote_id: uuid.UUID) -> QuoteRead | None: ...

    async def update_status(
        self,
        quote_id: uuid.UUID,
        status: QuoteStatus,
        *,
        expected_status: QuoteStatus,
        extra: Mapping[str, Any] | None = None,
        actor_id: str = "system",
    ) -> QuoteRead: ...


class SqlQuoteRepository:
    """Quote persistence on a synchronous SQLAlchemy session.

    Status writes are compare-and-swap: the UPDATE only matches while the row
    still holds ``expected_status``, so two racing transitions on one quote
    cannot both commit.
    """

    def __init__(self, session: Session):
        self.session = session

    async def find_by_id(self, quote_id: uuid.UUID) -> QuoteRead | None:
        return await run_in_threadpool(self._find_by_id, quote_id)

    async def update_status(
        self,
        quote_id: uuid.UUID,
        status: QuoteStatus,
        *,
        expected_status: QuoteStatus,
        extra: Mapping[str, Any] | None = None,
        actor_id: str = "system",
    ) -> QuoteRead:
        values = dict(extra or {})
        unknown = set(values) - STATUS_EXTRA_FIELDS
        if unknown:
            raise ValueError(f"Unsupported status write fields: {', '.join(sorted(unknown))}")
        return await run_in_threadpool(
            self._update_status,
            quote_id,
            status,
            expected_status,
            values,
            actor_id,
            get_correlation_id(),
        )

    async def add(self, payload: QuoteCreate, *, default_tax_rate: Decimal) -> QuoteRead:
        return await run_in_threadpool(self._add, payload, default_tax_rate)

    async def replace_line_items(self, quote_id: uuid.UUID, items: list[QuoteLineItemInput]) -> QuoteRead:
        return await run_in_threadpool(self._replace_line_items, quote_id, items)

    async def list_status_changes(self, quote_id: uuid.UUID) -> list[QuoteStatusChangeRead]:
        return await run_in_threadpool(self._list_status_changes, quote_id)

    def _load(self, quote_id: uuid.UUID) -> Quote | None:
        stmt = (
            select(Quote)
            .options(selectinload(Quote.line_items))
            .where(Quote.id == quote_id)
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(stmt)

    def _find_by_id(self, quote_id: uuid.UUID) -> QuoteRead | None:
        quote = self._load(quote_id)
        return QuoteRead.model_validate(quote) if quote is not None else None

    def _update_status(
        self,
        quote_id: uuid.UUID,
        status: QuoteStatus,
        expected_status: QuoteStatus,
        values: dict[str, Any],
        actor_id: str,
        correlation_id: str | None,
    ) -> QuoteRead:
        stmt = (
            update(Quote)
            .where(Quote.id == quote_id, Quote.status == expected_status.value)
            .values(status=status.value, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            self.session.rollback()
            current = self.session.scalar(select(Quote.status).where(Quote.id == quote_id))
            if current is None:
                raise QuoteNotFoundError(quote_id)
            raise InvalidTransitionError(current, status.value)

        self.session.add(
            QuoteStatusChange(
                quote_id=quote_id,
                from_status=expected_status.value,
                to_status=status.value,
                actor_id=actor_id,
                correlation_id=correlation_id,
            )
        )
        self.session.commit()

        quote = self._load(quote_id)
        if quote is None:
            raise QuoteNotFoundError(quote_id)
        return QuoteRead.model_validate(quote)

    def _add(self, payload: QuoteCreate, default_tax_rate: Decimal) -> QuoteRead:
        tax_rate = payload.tax_rate if payload.tax_rate is not None else default_tax_rate
        subtotal, tax, total = compute_totals(payload.line_items, tax_rate)
        quote = Quote(
            quote_number=payload.quote_number,
            title=payload.title,
            status=QuoteStatus.DRAFT.value,
            deal_id=payload.deal_id,
            company_id=payload.company_id,
            contact_id=payload.contact_id,
            currency=payload.currency.upper(),
            tax_rate=tax_rate,
            subtotal=subtotal,
            tax=tax,
            total=total,
            terms=payload.terms,
            notes=payload.notes,
            line_items=self._build_line_items(payload.line_items),
        )
        self.session.add(quote)
        self.session.commit()
        return self._find_by_id(quote.id)  # type: ignore[return-value]

    def _tax_rate(self, quote_id: uuid.UUID) -> Decimal | None:
        return self.session.scalar(select(Quote.tax_rate).where(Quote.id == quote_id))

    def _replace_line_items(self, quote_id: uuid.UUID, items: list[QuoteLineItemInput]) -> QuoteRead:
        tax_rate = self._tax_rate(quote_id)
        if tax_rate is None:
            raise QuoteNotFoundError(quote_id)
        subtotal, tax, total = compute_totals(items, tax_rate)

        # totals and items only change while the row is still a draft
        stmt = (
            update(Quote)
            .where(Quote.id == quote_id, Quote.status == QuoteStatus.DRAFT.value)
            .values(subtotal=subtotal, tax=tax, total=total, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            self.session.rollback()
            current = self.session.scalar(select(Quote.status).where(Quote.id == quote_id))
            if current is None:
                raise QuoteNotFoundError(quote_id)
            raise QuoteLockedError(quote_id, current)

        self.session.execute(
            delete(QuoteLineItem)
            .where(QuoteLineItem.quote_id == quote_id)
            .execution_options(synchronize_session=False)
        )
        for line_item in self._build_line_items(items):
            line_item.quote_id = quote_id
            self.session.add(line_item)
        self.session.commit()
        return self._find_by_id(quote_id)  # type: ignore[return-value]

    def _list_status_changes(self, quote_id: uuid.UUID) -> list[QuoteStatusChangeRead]:
        rows = self.session.scalars(
            select(QuoteStatusChange)
            .where(QuoteStatusChange.quote_id == quote_id)
            .order_by(QuoteStatusChange.changed_at, QuoteStatusChange.id)
        ).all()
        return [QuoteStatusChangeRead.model_validate(row) for row in rows]

    @staticmethod
    def _build_line_items(items: Iterable[QuoteLineItemInput]) -> list[QuoteLineItem]:
        return [
            QuoteLineItem(
                position=position,
                description=item.description,
                quantity=item.quantity,
                unit_price=quantize_money(item.unit_price),
                line_total=quantize_money(item.quantity * item.unit_price),
            )
            for position, item in enumerate(items, start=1)
        ]
