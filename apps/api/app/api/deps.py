from __future__ import annotations

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.auth import AuthUser, get_current_user
from app.core.config import get_settings
from app.core.database import get_db
from app.delivery.repository import DeliveryLogRepository
from app.delivery.service import DeliveryService
from app.delivery.transport import InMemoryMailTransport, MailTransport, SmtpMailTransport, format_sender
from app.documents.renderer import DocumentRenderer, ReportLabDocumentRenderer
from app.documents.repository import GeneratedDocumentRepository
from app.documents.service import DocumentService
from app.documents.store import DocumentStore, LocalDocumentStore
from app.parties.directory import SqlPartyDirectory
from app.quotes.repository import SqlQuoteRepository
from app.quotes.service import QuoteLifecycleService


@lru_cache
def get_mail_transport() -> MailTransport:
    settings = get_settings()
    if settings.mail_transport.lower() == "smtp":
        return SmtpMailTransport(
            settings.smtp_host,
            settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
            timeout=settings.smtp_timeout_seconds,
        )
    return InMemoryMailTransport()


@lru_cache
def get_document_store() -> DocumentStore:
    settings = get_settings()
    return LocalDocumentStore(settings.documents_dir, base_url=settings.documents_base_url)


@lru_cache
def get_document_renderer() -> DocumentRenderer:
    return ReportLabDocumentRenderer()


def get_delivery_service(
    db: Session = Depends(get_db),
    transport: MailTransport = Depends(get_mail_transport),
) -> DeliveryService:
    settings = get_settings()
    return DeliveryService(
        transport=transport,
        log_repository=DeliveryLogRepository(db),
        default_sender=format_sender(settings.mail_from, settings.mail_from_name),
    )


def get_quote_lifecycle_service(
    db: Session = Depends(get_db),
    renderer: DocumentRenderer = Depends(get_document_renderer),
    store: DocumentStore = Depends(get_document_store),
    delivery: DeliveryService = Depends(get_delivery_service),
) -> QuoteLifecycleService:
    return QuoteLifecycleService(
        quotes=SqlQuoteRepository(db),
        documents=DocumentService(renderer=renderer, store=store, records=GeneratedDocumentRepository(db)),
        delivery=delivery,
        parties=SqlPartyDirectory(db),
    )


def get_actor_id(user: AuthUser = Depends(get_current_user)) -> str:
    """Audit actor for status writes: the token subject, or ``anonymous``."""
    return user.sub
