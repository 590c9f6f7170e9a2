from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.context import get_correlation_id
from app.documents.errors import DocumentError, RenderError, StorageError
from app.quotes.errors import (
    DeliveryFailureError,
    DocumentNotAllowedError,
    InvalidRejectionReasonError,
    InvalidTransitionError,
    QuoteLockedError,
    QuoteNotFoundError,
    QuotePipelineError,
)


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def pipeline_error_response(request: Request, exc: QuotePipelineError | DocumentError) -> JSONResponse:
    if isinstance(exc, QuoteNotFoundError):
        return error_response(request, status_code=status.HTTP_404_NOT_FOUND, code="quote_not_found", message=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return error_response(
            request,
            status_code=status.HTTP_409_CONFLICT,
            code="quote_invalid_transition",
            message=str(exc),
            details={"current": exc.current, "target": exc.target},
        )
    if isinstance(exc, QuoteLockedError):
        return error_response(request, status_code=status.HTTP_409_CONFLICT, code="quote_locked", message=str(exc))
    if isinstance(exc, DocumentNotAllowedError):
        return error_response(request, status_code=status.HTTP_409_CONFLICT, code="document_not_allowed", message=str(exc))
    if isinstance(exc, InvalidRejectionReasonError):
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="quote_rejection_reason_required",
            message=str(exc),
        )
    if isinstance(exc, DeliveryFailureError):
        return error_response(
            request,
            status_code=status.HTTP_502_BAD_GATEWAY,
            code="quote_delivery_failed",
            message=str(exc),
            details={"recipient": exc.recipient, "error": exc.error},
        )
    if isinstance(exc, RenderError):
        return error_response(
            request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="document_render_failed",
            message="document rendering failed",
        )
    if isinstance(exc, StorageError):
        return error_response(
            request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="document_storage_failed",
            message="document storage failed",
        )
    return error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="quote_pipeline_failed",
        message=str(exc),
    )
