from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.events import DomainEvent, event_bus
from app.logging import configure_logging
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.middleware.request_logging import RequestLoggingMiddleware
from app.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("app.lifecycle")
_subscriptions_registered = False

_quote_event_types = [
    "quote.sent",
    "quote.approved",
    "quote.rejected",
]


def _on_quote_event(event: DomainEvent) -> None:
    payload = event.payload.get("payload") or {}
    logger.info(
        "quote.event",
        extra={
            "event_type": event.name,
            "quote_id": payload.get("quote_id"),
            "status": payload.get("to_status"),
            "actor_id": event.payload.get("actor_user_id"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        for event_name in _quote_event_types:
            event_bus.subscribe(event_name, _on_quote_event)
        _subscriptions_registered = True
    settings = get_settings()
    logger.info("app.started", extra={"provider": settings.mail_transport})
    yield


app = FastAPI(title="JamesCRM API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel("api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
