from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class DeliveryStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/pdf"


@dataclass(slots=True)
class OutboundMessage:
    to: str
    subject: str
    body: str
    sender: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    entity_type: str | None = None
    entity_id: str | None = None


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    accepted: bool
    provider: str
    provider_message_id: str | None = None
    error: str | None = None


class DeliveryLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    to_address: str
    from_address: str
    subject: str
    attachment_name: str | None
    status: DeliveryStatus
    error: str | None
    provider: str
    provider_message_id: str | None
    entity_type: str | None
    entity_id: str | None
    correlation_id: str | None
    created_at: datetime


@dataclass(slots=True)
class DeliveryLogQuery:
    recipient: str | None = None
    sender: str | None = None
    status: DeliveryStatus | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int = 100
