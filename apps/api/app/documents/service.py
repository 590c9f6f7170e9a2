from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from starlette.concurrency import run_in_threadpool

from app.documents.errors import DocumentError
from app.documents.renderer import DocumentRenderer
from app.documents.repository import GeneratedDocumentRepository
from app.documents.schemas import DocumentType, GeneratedDocument, GeneratedDocumentReference, document_filename, document_path
from app.documents.store import DocumentStore
from app.metrics import observe_document_generated, observe_document_render
from app.otel import get_tracer, set_span_context
from app.parties.schemas import CompanyInfo, ContactInfo
from app.quotes.schemas import QuoteRead


logger = logging.getLogger("app.documents")
tracer = get_tracer("app.documents")

DEFAULT_QUOTE_TERMS = "This quote is valid for 30 days from the date of issue."
DEFAULT_LEGAL_TERMS = (
    "Payment terms: 50% deposit required to begin work, balance due upon completion. "
    "Estimated completion time: 2-4 weeks from project start date."
)
INVOICE_DUE_DAYS = 30


def _derived_number(document_type: DocumentType, quote_number: str) -> str:
    base = quote_number.removeprefix("Q-")
    if document_type is DocumentType.CONTRACT:
        return f"C-{base}"
    if document_type is DocumentType.INVOICE:
        return f"INV-{base}"
    return quote_number


def build_template_data(
    document_type: DocumentType,
    quote: QuoteRead,
    company: CompanyInfo | None,
    contact: ContactInfo | None,
    *,
    recipient: str | None = None,
) -> dict[str, Any]:
    """Template input for ``document_type``; dates come from the quote so regeneration is stable.

    A missing company or contact leaves its name unset, which the renderer
    rejects as a missing required field.
    """
    issued = quote.created_at.date()
    data: dict[str, Any] = {
        "date": issued.isoformat(),
        "title": quote.title,
        "currency": quote.currency,
        "company_name": company.name if company is not None else None,
        "company_address": company.formatted_address if company is not None else None,
        "contact_name": contact.full_name if contact is not None else None,
        "contact_email": recipient or (contact.email if contact is not None else None),
        "items": [
            {"description": item.description, "quantity": item.quantity, "unit_price": item.unit_price}
            for item in quote.line_items
        ],
        "subtotal": quote.subtotal,
        "tax": quote.tax,
        "total": quote.total,
        "terms": quote.terms or DEFAULT_QUOTE_TERMS,
    }

    number = _derived_number(document_type, quote.quote_number)
    if document_type is DocumentType.QUOTE:
        data["quote_number"] = number
        data["notes"] = quote.notes
    elif document_type is DocumentType.CONTRACT:
        data["contract_number"] = number
        data["start_date"] = quote.decided_at.date().isoformat() if quote.decided_at else None
        data["legal_terms"] = DEFAULT_LEGAL_TERMS
    else:
        data["invoice_number"] = number
        data["due_date"] = (issued + timedelta(days=INVOICE_DUE_DAYS)).isoformat()
        data["payment_instructions"] = quote.notes
    return data


@dataclass(slots=True)
class DocumentService:
    renderer: DocumentRenderer
    store: DocumentStore
    records: GeneratedDocumentRepository

    async def generate(
        self,
        document_type: DocumentType,
        quote: QuoteRead,
        company: CompanyInfo | None,
        contact: ContactInfo | None,
        *,
        recipient: str | None = None,
        created_by: str = "system",
    ) -> GeneratedDocument:
        """Render, store and record one document for ``quote``. Errors propagate unchanged."""
        data = build_template_data(document_type, quote, company, contact, recipient=recipient)
        path = document_path(document_type, quote.quote_number)
        log_fields = {"quote_id": str(quote.id), "document_type": document_type.value, "storage_path": path}

        try:
            with tracer.start_as_current_span("document.render") as span:
                set_span_context(span, quote_id=quote.id, quote_number=quote.quote_number, document_type=document_type.value)
                started = time.perf_counter()
                content = await run_in_threadpool(self.renderer.render, document_type.template_id, data)
                observe_document_render(document_type.value, time.perf_counter() - started)

            with tracer.start_as_current_span("document.store") as span:
                set_span_context(span, quote_id=quote.id, storage_path=path)
                await self.store.save(path, content)
        except DocumentError as exc:
            observe_document_generated(document_type.value, "failed")
            logger.error("document.generation_failed", extra={**log_fields, "error": str(exc)[:500]})
            raise

        reference = GeneratedDocumentReference(
            entity_type="quote",
            entity_id=str(quote.id),
            document_type=document_type,
            storage_path=path,
            filename=document_filename(document_type, quote.quote_number),
            url=self.store.url_for(path),
        )
        record = await self.records.upsert(reference, created_by=created_by)
        reference.id = record.id

        observe_document_generated(document_type.value, "success")
        logger.info("document.generated", extra={**log_fields, "actor_id": created_by})
        return GeneratedDocument(reference=reference, content=content)
