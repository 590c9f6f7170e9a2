from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace

from app import events
from app.delivery.schemas import Attachment, OutboundMessage
from app.delivery.service import MessageSender
from app.documents.errors import DocumentError
from app.documents.schemas import DocumentType, GeneratedDocumentReference
from app.documents.service import DocumentService
from app.metrics import observe_quote_transition
from app.otel import get_tracer, set_span_context
from app.parties.directory import PartyDirectory
from app.quotes.errors import (
    DeliveryFailureError,
    DocumentNotAllowedError,
    InvalidRejectionReasonError,
    InvalidTransitionError,
    QuoteNotFoundError,
)
from app.quotes.models import utcnow
from app.quotes.repository import QuoteRepository
from app.quotes.schemas import QuoteRead, QuoteStatus, SendQuoteEmail, TransitionResult


logger = logging.getLogger("app.quotes.lifecycle")
tracer = get_tracer("app.quotes")

VALID_QUOTE_TRANSITIONS: dict[QuoteStatus, frozenset[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.SENT}),
    QuoteStatus.SENT: frozenset({QuoteStatus.APPROVED, QuoteStatus.REJECTED}),
    QuoteStatus.APPROVED: frozenset(),
    QuoteStatus.REJECTED: frozenset(),
}

# statuses a quote must hold before a document of each type may be generated
DOCUMENT_ALLOWED_STATUSES: dict[DocumentType, frozenset[QuoteStatus]] = {
    DocumentType.QUOTE: frozenset(QuoteStatus),
    DocumentType.CONTRACT: frozenset({QuoteStatus.APPROVED}),
    DocumentType.INVOICE: frozenset({QuoteStatus.APPROVED}),
}

_TRANSITION_NAMES = {
    QuoteStatus.SENT: "send",
    QuoteStatus.APPROVED: "approve",
    QuoteStatus.REJECTED: "reject",
}


def can_transition(current: QuoteStatus, target: QuoteStatus) -> bool:
    return target in VALID_QUOTE_TRANSITIONS.get(current, frozenset())


def quote_attachment_name(quote_number: str) -> str:
    return f"Quote_{quote_number}.pdf"


@dataclass(slots=True)
class QuoteLifecycleService:
    """Drives quotes through draft -> sent -> approved | rejected.

    Every status write goes through ``QuoteRepository.update_status`` with the
    status the quote was loaded in as ``expected_status``; a concurrent writer
    turns the second write into ``InvalidTransitionError``. Nothing is retried
    here: a failed send leaves the quote in draft for the caller to retry.
    """

    quotes: QuoteRepository
    documents: DocumentService
    delivery: MessageSender
    parties: PartyDirectory

    async def send_quote(self, quote_id: uuid.UUID, email: SendQuoteEmail, *, actor_id: str = "system") -> TransitionResult:
        with tracer.start_as_current_span("quote.send") as span:
            set_span_context(span, quote_id=quote_id)
            quote = await self._load_for_transition(quote_id, QuoteStatus.SENT)
            span.set_attribute("quote_number", quote.quote_number)

            company = await self.parties.get_company(quote.company_id)
            contact = await self.parties.get_contact(quote.contact_id)
            try:
                document = await self.documents.generate(
                    DocumentType.QUOTE, quote, company, contact, recipient=email.to, created_by=actor_id
                )
            except DocumentError:
                observe_quote_transition("send", "document_failed")
                raise

            message = OutboundMessage(
                to=email.to,
                subject=email.subject or f"Quote {quote.quote_number}",
                body=email.body or f"Please find attached quote {quote.quote_number}",
                attachments=[Attachment(filename=quote_attachment_name(quote.quote_number), content=document.content)],
                entity_type="quote",
                entity_id=str(quote.id),
            )
            result = await self.delivery.send(message)
            if not result.accepted:
                observe_quote_transition("send", "delivery_failed")
                logger.warning(
                    "quote.send_failed",
                    extra={
                        "quote_id": str(quote.id),
                        "quote_number": quote.quote_number,
                        "recipient": email.to,
                        "provider": result.provider,
                        "error": result.error,
                    },
                )
                raise DeliveryFailureError(email.to, result.error)

            await self._commit_transition(
                quote,
                QuoteStatus.SENT,
                actor_id=actor_id,
                extra={"document_path": document.reference.storage_path, "sent_at": utcnow()},
                event_payload={"recipient": email.to, "document_path": document.reference.storage_path},
            )
        return TransitionResult(message=f"Quote {quote.quote_number} sent to {email.to}", status=QuoteStatus.SENT)

    async def approve_quote(self, quote_id: uuid.UUID, *, actor_id: str = "system") -> TransitionResult:
        with tracer.start_as_current_span("quote.approve") as span:
            set_span_context(span, quote_id=quote_id)
            quote = await self._load_for_transition(quote_id, QuoteStatus.APPROVED)
            span.set_attribute("quote_number", quote.quote_number)
            await self._commit_transition(quote, QuoteStatus.APPROVED, actor_id=actor_id, extra={"decided_at": utcnow()})
        return TransitionResult(message=f"Quote {quote.quote_number} approved", status=QuoteStatus.APPROVED)

    async def reject_quote(self, quote_id: uuid.UUID, reason: str | None, *, actor_id: str = "system") -> TransitionResult:
        cleaned = (reason or "").strip()
        if not cleaned:
            observe_quote_transition("reject", "invalid_reason")
            raise InvalidRejectionReasonError()

        with tracer.start_as_current_span("quote.reject") as span:
            set_span_context(span, quote_id=quote_id)
            quote = await self._load_for_transition(quote_id, QuoteStatus.REJECTED)
            span.set_attribute("quote_number", quote.quote_number)
            await self._commit_transition(
                quote,
                QuoteStatus.REJECTED,
                actor_id=actor_id,
                extra={"rejection_reason": cleaned, "decided_at": utcnow()},
                event_payload={"reason": cleaned},
            )
        return TransitionResult(message=f"Quote {quote.quote_number} rejected", status=QuoteStatus.REJECTED)

    async def generate_document(
        self, quote_id: uuid.UUID, document_type: DocumentType, *, actor_id: str = "system"
    ) -> GeneratedDocumentReference:
        """Render and store a document for the quote without touching its status."""
        quote = await self.quotes.find_by_id(quote_id)
        if quote is None:
            raise QuoteNotFoundError(quote_id)
        if quote.status not in DOCUMENT_ALLOWED_STATUSES[document_type]:
            raise DocumentNotAllowedError(document_type.value, quote.status.value)

        company = await self.parties.get_company(quote.company_id)
        contact = await self.parties.get_contact(quote.contact_id)
        document = await self.documents.generate(document_type, quote, company, contact, created_by=actor_id)
        return document.reference

    async def _load_for_transition(self, quote_id: uuid.UUID, target: QuoteStatus) -> QuoteRead:
        transition = _TRANSITION_NAMES[target]
        quote = await self.quotes.find_by_id(quote_id)
        if quote is None:
            observe_quote_transition(transition, "not_found")
            logger.warning("quote.not_found", extra={"quote_id": str(quote_id), "target_status": target.value})
            raise QuoteNotFoundError(quote_id)

        if not can_transition(quote.status, target):
            observe_quote_transition(transition, "invalid")
            logger.warning(
                "quote.transition_rejected",
                extra={
                    "quote_id": str(quote.id),
                    "quote_number": quote.quote_number,
                    "status": quote.status.value,
                    "target_status": target.value,
                },
            )
            raise InvalidTransitionError(quote.status.value, target.value)
        return quote

    async def _commit_transition(
        self,
        quote: QuoteRead,
        target: QuoteStatus,
        *,
        actor_id: str,
        extra: Mapping[str, Any] | None = None,
        event_payload: Mapping[str, Any] | None = None,
    ) -> QuoteRead:
        transition = _TRANSITION_NAMES[target]
        try:
            updated = await self.quotes.update_status(
                quote.id,
                target,
                expected_status=quote.status,
                extra=extra,
                actor_id=actor_id,
            )
        except (InvalidTransitionError, QuoteNotFoundError):
            observe_quote_transition(transition, "conflict")
            logger.warning(
                "quote.transition_conflict",
                extra={
                    "quote_id": str(quote.id),
                    "quote_number": quote.quote_number,
                    "status": quote.status.value,
                    "target_status": target.value,
                },
            )
            raise

        observe_quote_transition(transition, "success")
        logger.info(
            "quote.status_changed",
            extra={
                "quote_id": str(updated.id),
                "quote_number": updated.quote_number,
                "status": updated.status.value,
                "actor_id": actor_id,
            },
        )
        trace.get_current_span().set_attribute("quote.status", updated.status.value)
        events.publish(
            {
                "event_id": str(uuid.uuid4()),
                "event_type": f"quote.{target.value}",
                "occurred_at": utcnow().isoformat(),
                "actor_user_id": actor_id,
                "payload": {
                    "quote_id": str(updated.id),
                    "quote_number": updated.quote_number,
                    "from_status": quote.status.value,
                    "to_status": updated.status.value,
                    **dict(event_payload or {}),
                },
            }
        )
        return updated
