from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


_NON_ALPHANUMERIC_RE = re.compile(r"[^a-zA-Z0-9]")


class DocumentType(StrEnum):
    QUOTE = "quote"
    CONTRACT = "contract"
    INVOICE = "invoice"

    @property
    def template_id(self) -> str:
        return f"{self.value}-template"

    @property
    def prefix(self) -> str:
        return self.value.capitalize()


def sanitize_number(number: str) -> str:
    return _NON_ALPHANUMERIC_RE.sub("_", number)


def document_filename(document_type: DocumentType, quote_number: str) -> str:
    return f"{document_type.prefix}_{sanitize_number(quote_number)}.pdf"


def document_path(document_type: DocumentType, quote_number: str) -> str:
    """Storage path operators rely on, e.g. ``quotes/Quote_Q_2023_001.pdf``."""
    return f"{document_type.value}s/{document_filename(document_type, quote_number)}"


class GeneratedDocumentReference(BaseModel):
    id: uuid.UUID | None = None
    entity_type: str
    entity_id: str
    document_type: DocumentType
    storage_path: str
    filename: str
    url: str


class GeneratedDocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    entity_type: str
    entity_id: str
    document_type: DocumentType
    storage_path: str
    filename: str
    created_by: str
    created_at: datetime
    url: str | None = None


@dataclass(slots=True)
class GeneratedDocument:
    reference: GeneratedDocumentReference
    content: bytes
