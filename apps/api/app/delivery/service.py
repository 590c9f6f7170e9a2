from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from app.context import get_correlation_id
from app.delivery.models import DeliveryLog
from app.delivery.repository import DeliveryLogRepository
from app.delivery.schemas import DeliveryResult, DeliveryStatus, OutboundMessage
from app.delivery.transport import MailTransport
from app.metrics import observe_delivery
from app.otel import get_tracer, set_span_context


logger = logging.getLogger("app.delivery")
tracer = get_tracer("app.delivery")

MAX_ERROR_LENGTH = 1000


class MessageSender(Protocol):
    async def send(self, message: OutboundMessage) -> DeliveryResult: ...


@dataclass(slots=True)
class DeliveryService:
    """Sends one message and records exactly one log entry for the attempt.

    Transport exceptions are never propagated: they come back as a result with
    ``accepted=False`` and the captured error.
    """

    transport: MailTransport
    log_repository: DeliveryLogRepository
    default_sender: str

    async def send(self, message: OutboundMessage) -> DeliveryResult:
        sender = message.sender or self.default_sender
        with tracer.start_as_current_span("delivery.send") as span:
            set_span_context(span, provider=self.transport.name, entity_id=message.entity_id)
            try:
                result = await self.transport.send(message, sender)
            except Exception as exc:
                span.record_exception(exc)
                logger.exception(
                    "delivery.transport_failed",
                    extra={"recipient": message.to, "provider": self.transport.name, "error": str(exc)[:500]},
                )
                result = DeliveryResult(accepted=False, provider=self.transport.name, error=str(exc) or type(exc).__name__)
            span.set_attribute("delivery.accepted", result.accepted)

        status = DeliveryStatus.SENT if result.accepted else DeliveryStatus.FAILED
        await self.log_repository.append(
            DeliveryLog(
                to_address=message.to,
                from_address=sender,
                subject=message.subject,
                attachment_name=message.attachments[0].filename if message.attachments else None,
                status=status.value,
                error=(result.error or "")[:MAX_ERROR_LENGTH] or None,
                provider=result.provider,
                provider_message_id=result.provider_message_id,
                entity_type=message.entity_type,
                entity_id=message.entity_id,
                correlation_id=get_correlation_id(),
            )
        )
        observe_delivery(result.provider, status.value)

        if result.accepted:
            logger.info("delivery.sent", extra={"recipient": message.to, "provider": result.provider})
        else:
            logger.warning(
                "delivery.failed",
                extra={"recipient": message.to, "provider": result.provider, "error": result.error},
            )
        return result
