from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

quote_transitions_total = Counter(
    "quote_transitions_total",
    "Quote status transition attempts by transition and outcome",
    ["transition", "outcome"],
)

documents_generated_total = Counter(
    "documents_generated_total",
    "Generated documents by type and outcome",
    ["document_type", "outcome"],
)

document_render_duration_seconds = Histogram(
    "document_render_duration_seconds",
    "Document render duration in seconds",
    ["document_type"],
)

deliveries_total = Counter(
    "deliveries_total",
    "Outbound message deliveries by provider and status",
    ["provider", "status"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return path_format
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return route_path
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_quote_transition(transition: str, outcome: str) -> None:
    quote_transitions_total.labels(transition=transition, outcome=outcome).inc()


def observe_document_generated(document_type: str, outcome: str) -> None:
    documents_generated_total.labels(document_type=document_type, outcome=outcome).inc()


def observe_document_render(document_type: str, duration: float) -> None:
    document_render_duration_seconds.labels(document_type=document_type).observe(duration)


def observe_delivery(provider: str, status: str) -> None:
    deliveries_total.labels(provider=provider, status=status).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
