from __future__ import annotations

import uuid


class QuotePipelineError(Exception):
    """Base error for quote lifecycle failures."""


class QuoteNotFoundError(QuotePipelineError):
    def __init__(self, quote_id: uuid.UUID) -> None:
        self.quote_id = quote_id
        super().__init__(f"Quote {quote_id} not found")


class InvalidTransitionError(QuotePipelineError):
    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move quote from {current} to {target}")


class QuoteLockedError(QuotePipelineError):
    def __init__(self, quote_id: uuid.UUID, status: str) -> None:
        self.quote_id = quote_id
        self.status = status
        super().__init__(f"Quote {quote_id} is {status}; only draft quotes can be edited")


class InvalidRejectionReasonError(QuotePipelineError, ValueError):
    def __init__(self) -> None:
        super().__init__("Rejection reason is required")


class DeliveryFailureError(QuotePipelineError):
    """The document was generated but the message was not accepted; the quote stays in draft."""

    def __init__(self, recipient: str, error: str | None) -> None:
        self.recipient = recipient
        self.error = error
        super().__init__(f"Delivery to {recipient} failed: {error or 'not accepted'}")


class DocumentNotAllowedError(QuotePipelineError):
    def __init__(self, document_type: str, status: str) -> None:
        self.document_type = document_type
        self.status = status
        super().__init__(f"Cannot generate {document_type} for a quote in status {status}")
