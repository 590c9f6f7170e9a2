from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_actor_id, get_document_store, get_quote_lifecycle_service
from app.api.errors import pipeline_error_response
from app.core.database import get_db
from app.documents.errors import DocumentError
from app.documents.repository import GeneratedDocumentRepository
from app.documents.schemas import DocumentType, GeneratedDocumentRead, GeneratedDocumentReference
from app.documents.store import DocumentStore
from app.quotes.errors import QuoteNotFoundError, QuotePipelineError
from app.quotes.repository import SqlQuoteRepository
from app.quotes.schemas import (
    QuoteLineItemInput,
    QuoteRead,
    QuoteStatusChangeRead,
    RejectQuoteRequest,
    SendQuoteEmail,
    TransitionResult,
)
from app.quotes.service import QuoteLifecycleService


router = APIRouter(prefix="/api/quotes", tags=["quotes"])


@router.get("/{quote_id}", response_model=QuoteRead)
async def get_quote(request: Request, quote_id: uuid.UUID, db: Session = Depends(get_db)) -> QuoteRead | JSONResponse:
    quote = await SqlQuoteRepository(db).find_by_id(quote_id)
    if quote is None:
        return pipeline_error_response(request, QuoteNotFoundError(quote_id))
    return quote


@router.put("/{quote_id}/line-items", response_model=QuoteRead)
async def replace_line_items(
    request: Request,
    quote_id: uuid.UUID,
    items: list[QuoteLineItemInput],
    db: Session = Depends(get_db),
) -> QuoteRead | JSONResponse:
    try:
        return await SqlQuoteRepository(db).replace_line_items(quote_id, items)
    except QuotePipelineError as exc:
        return pipeline_error_response(request, exc)


@router.get("/{quote_id}/history", response_model=list[QuoteStatusChangeRead])
async def list_status_changes(
    request: Request,
    quote_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> list[QuoteStatusChangeRead] | JSONResponse:
    repository = SqlQuoteRepository(db)
    if await repository.find_by_id(quote_id) is None:
        return pipeline_error_response(request, QuoteNotFoundError(quote_id))
    return await repository.list_status_changes(quote_id)


@router.post("/{quote_id}/send", response_model=TransitionResult)
async def send_quote(
    request: Request,
    quote_id: uuid.UUID,
    dto: SendQuoteEmail,
    service: QuoteLifecycleService = Depends(get_quote_lifecycle_service),
    actor_id: str = Depends(get_actor_id),
) -> TransitionResult | JSONResponse:
    try:
        return await service.send_quote(quote_id, dto, actor_id=actor_id)
    except (QuotePipelineError, DocumentError) as exc:
        return pipeline_error_response(request, exc)


@router.post("/{quote_id}/approve", response_model=TransitionResult)
async def approve_quote(
    request: Request,
    quote_id: uuid.UUID,
    service: QuoteLifecycleService = Depends(get_quote_lifecycle_service),
    actor_id: str = Depends(get_actor_id),
) -> TransitionResult | JSONResponse:
    try:
        return await service.approve_quote(quote_id, actor_id=actor_id)
    except QuotePipelineError as exc:
        return pipeline_error_response(request, exc)


@router.post("/{quote_id}/reject", response_model=TransitionResult)
async def reject_quote(
    request: Request,
    quote_id: uuid.UUID,
    dto: RejectQuoteRequest,
    service: QuoteLifecycleService = Depends(get_quote_lifecycle_service),
    actor_id: str = Depends(get_actor_id),
) -> TransitionResult | JSONResponse:
    try:
        return await service.reject_quote(quote_id, dto.reason, actor_id=actor_id)
    except QuotePipelineError as exc:
        return pipeline_error_response(request, exc)


@router.post(
    "/{quote_id}/documents/{document_type}",
    response_model=GeneratedDocumentReference,
    status_code=status.HTTP_201_CREATED,
)
async def generate_document(
    request: Request,
    quote_id: uuid.UUID,
    document_type: DocumentType,
    service: QuoteLifecycleService = Depends(get_quote_lifecycle_service),
    actor_id: str = Depends(get_actor_id),
) -> GeneratedDocumentReference | JSONResponse:
    try:
        return await service.generate_document(quote_id, document_type, actor_id=actor_id)
    except (QuotePipelineError, DocumentError) as exc:
        return pipeline_error_response(request, exc)


@router.get("/{quote_id}/documents", response_model=list[GeneratedDocumentRead])
async def list_documents(
    request: Request,
    quote_id: uuid.UUID,
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
) -> list[GeneratedDocumentRead] | JSONResponse:
    if await SqlQuoteRepository(db).find_by_id(quote_id) is None:
        return pipeline_error_response(request, QuoteNotFoundError(quote_id))
    records = await GeneratedDocumentRepository(db).list_for("quote", str(quote_id))
    return [record.model_copy(update={"url": store.url_for(record.storage_path)}) for record in records]
