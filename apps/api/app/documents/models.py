from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeneratedDocumentRecord(Base):
    """The document currently stored at ``storage_path``.

    Regenerating overwrites the file, so the row is upserted by path and
    ``created_by``/``created_at`` describe the latest generation.
    """

    __tablename__ = "generated_document"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    document_type: Mapped[str] = mapped_column(String(16), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(512), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("document_type IN ('quote', 'contract', 'invoice')", name="ck_generated_document_type"),
        UniqueConstraint("storage_path", name="uq_generated_document_storage_path"),
        Index("ix_generated_document_entity", "entity_type", "entity_id"),
    )
