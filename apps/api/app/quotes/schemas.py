from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class QuoteStatus(StrEnum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"


class QuoteLineItemInput(BaseModel):
    description: str = Field(min_length=1)
    quantity: Decimal = Field(ge=Decimal("0"))
    unit_price: Decimal = Field(ge=Decimal("0"))


class QuoteLineItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    position: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal


class QuoteCreate(BaseModel):
    quote_number: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1)
    deal_id: UUID
    company_id: UUID
    contact_id: UUID
    currency: str = Field(default="USD", min_length=3, max_length=3)
    tax_rate: Decimal | None = Field(default=None, ge=Decimal("0"))
    terms: str | None = None
    notes: str | None = None
    line_items: list[QuoteLineItemInput] = Field(default_factory=list)


class QuoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quote_number: str
    title: str
    status: QuoteStatus
    deal_id: UUID
    company_id: UUID
    contact_id: UUID
    currency: str
    tax_rate: Decimal
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    terms: str | None = None
    notes: str | None = None
    rejection_reason: str | None = None
    document_path: str | None = None
    sent_at: datetime | None = None
    decided_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    line_items: list[QuoteLineItemRead] = Field(default_factory=list)


class QuoteStatusChangeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quote_id: UUID
    from_status: QuoteStatus
    to_status: QuoteStatus
    actor_id: str
    correlation_id: str | None
    changed_at: datetime


class SendQuoteEmail(BaseModel):
    to: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    subject: str | None = Field(default=None, max_length=255, pattern=r"^[^\r\n]*$")
    body: str | None = None


class RejectQuoteRequest(BaseModel):
    reason: str | None = None


class TransitionResult(BaseModel):
    success: bool = True
    message: str
    status: QuoteStatus
