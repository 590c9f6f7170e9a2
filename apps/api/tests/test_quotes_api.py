from __future__ import annotations

import uuid
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session

from app.api.deps import get_document_store, get_mail_transport
from app.core.config import get_settings
from app.core.database import get_db
from app.delivery.transport import InMemoryMailTransport
from app.documents.store import LocalDocumentStore
from app.main import app


@pytest.fixture()
def transport() -> InMemoryMailTransport:
    return InMemoryMailTransport()


@pytest.fixture()
def documents_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture()
def client(db_session: Session, transport: InMemoryMailTransport, documents_dir: Path) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mail_transport] = lambda: transport
    app.dependency_overrides[get_document_store] = lambda: LocalDocumentStore(documents_dir, base_url="/uploads")
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _auth_headers(sub: str) -> dict[str, str]:
    settings = get_settings()
    token = jwt.encode({"sub": sub, "roles": ["sales"]}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


def test_get_quote(client: TestClient, seed_quote) -> None:
    quote_id = seed_quote("Q-123456")

    response = client.get(f"/api/quotes/{quote_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["quote_number"] == "Q-123456"
    assert body["status"] == "draft"
    assert len(body["line_items"]) == 2


def test_get_unknown_quote_returns_error_envelope(client: TestClient) -> None:
    response = client.get(f"/api/quotes/{uuid.uuid4()}", headers={"X-Correlation-Id": "corr-404"})

    assert response.status_code == 404
    body = response.json()
    assert body["code"] == "quote_not_found"
    assert body["correlation_id"] == "corr-404"


def test_send_quote_end_to_end(client: TestClient, seed_quote, transport: InMemoryMailTransport, documents_dir: Path) -> None:
    quote_id = seed_quote("Q-123456")

    response = client.post(f"/api/quotes/{quote_id}/send", json={"to": "client@example.com"}, headers=_auth_headers("user-7"))

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["status"] == "sent"

    stored = documents_dir / "quotes" / "Quote_Q_123456.pdf"
    assert stored.read_bytes().startswith(b"%PDF")
    assert len(transport.outbox) == 1
    assert transport.outbox[0]["To"] == "client@example.com"

    quote = client.get(f"/api/quotes/{quote_id}").json()
    assert quote["status"] == "sent"
    assert quote["document_path"] == "quotes/Quote_Q_123456.pdf"

    deliveries = client.get("/api/deliveries", params={"recipient": "client@example.com"})
    assert deliveries.status_code == 200
    assert [(entry["status"], entry["entity_id"]) for entry in deliveries.json()] == [("sent", str(quote_id))]

    history = client.get(f"/api/quotes/{quote_id}/history").json()
    assert [(entry["from_status"], entry["to_status"], entry["actor_id"]) for entry in history] == [
        ("draft", "sent", "user-7")
    ]


def test_send_twice_conflicts(client: TestClient, seed_quote) -> None:
    quote_id = seed_quote()
    assert client.post(f"/api/quotes/{quote_id}/send", json={"to": "client@example.com"}).status_code == 200

    response = client.post(f"/api/quotes/{quote_id}/send", json={"to": "client@example.com"})

    assert response.status_code == 409
    assert response.json()["code"] == "quote_invalid_transition"
    assert response.json()["details"] == {"current": "sent", "target": "sent"}


def test_send_requires_valid_recipient(client: TestClient, seed_quote) -> None:
    quote_id = seed_quote()

    response = client.post(f"/api/quotes/{quote_id}/send", json={"to": "not-an-email"})

    assert response.status_code == 422


def test_send_delivery_failure_returns_bad_gateway(client: TestClient, seed_quote, transport: InMemoryMailTransport) -> None:
    quote_id = seed_quote()
    transport.reject_next(TimeoutError("timed out"))

    response = client.post(f"/api/quotes/{quote_id}/send", json={"to": "client@example.com"})

    assert response.status_code == 502
    assert response.json()["code"] == "quote_delivery_failed"
    assert client.get(f"/api/quotes/{quote_id}").json()["status"] == "draft"
    failed = client.get("/api/deliveries", params={"status": "failed"}).json()
    assert [entry["error"] for entry in failed] == ["timed out"]


def test_send_without_company_is_a_render_failure(client: TestClient, seed_quote, transport: InMemoryMailTransport) -> None:
    quote_id = seed_quote(with_company=False)

    response = client.post(f"/api/quotes/{quote_id}/send", json={"to": "client@example.com"})

    assert response.status_code == 500
    assert response.json()["message"] == "document rendering failed"
    assert transport.outbox == []


def test_approve_and_reject_flow(client: TestClient, seed_quote) -> None:
    approved_id = seed_quote("Q-1", status="sent")
    rejected_id = seed_quote("Q-2", status="sent")

    assert client.post(f"/api/quotes/{approved_id}/approve").json()["status"] == "approved"
    response = client.post(f"/api/quotes/{rejected_id}/reject", json={"reason": "Price too high"})
    assert response.status_code == 200
    assert client.get(f"/api/quotes/{rejected_id}").json()["rejection_reason"] == "Price too high"

    too_late = client.post(f"/api/quotes/{approved_id}/reject", json={"reason": "too late"})
    assert too_late.status_code == 409


def test_reject_without_reason(client: TestClient, seed_quote) -> None:
    quote_id = seed_quote(status="sent")

    response = client.post(f"/api/quotes/{quote_id}/reject", json={"reason": "   "})

    assert response.status_code == 422
    assert response.json()["code"] == "quote_rejection_reason_required"
    assert client.get(f"/api/quotes/{quote_id}").json()["status"] == "sent"


def test_generate_contract_for_approved_quote(client: TestClient, seed_quote, documents_dir: Path) -> None:
    quote_id = seed_quote("Q-9", status="approved")

    response = client.post(f"/api/quotes/{quote_id}/documents/contract")

    assert response.status_code == 201
    body = response.json()
    assert body["storage_path"] == "contracts/Contract_Q_9.pdf"
    assert body["url"] == "/uploads/contracts/Contract_Q_9.pdf"
    assert (documents_dir / "contracts" / "Contract_Q_9.pdf").read_bytes().startswith(b"%PDF")


def test_generate_invoice_for_draft_is_refused(client: TestClient, seed_quote) -> None:
    quote_id = seed_quote()

    response = client.post(f"/api/quotes/{quote_id}/documents/invoice")

    assert response.status_code == 409
    assert response.json()["code"] == "document_not_allowed"


def test_generate_unknown_document_type(client: TestClient, seed_quote) -> None:
    quote_id = seed_quote()

    assert client.post(f"/api/quotes/{quote_id}/documents/receipt").status_code == 422


def test_replace_line_items_on_draft(client: TestClient, seed_quote) -> None:
    quote_id = seed_quote()

    response = client.put(
        f"/api/quotes/{quote_id}/line-items",
        json=[{"description": "Audit", "quantity": "2", "unit_price": "1000"}],
    )

    assert response.status_code == 200
    assert response.json()["total"] == "2200.00"


def test_replace_line_items_on_sent_quote_conflicts(client: TestClient, seed_quote) -> None:
    quote_id = seed_quote(status="sent")

    response = client.put(
        f"/api/quotes/{quote_id}/line-items",
        json=[{"description": "Audit", "quantity": "2", "unit_price": "1000"}],
    )

    assert response.status_code == 409
    assert response.json()["code"] == "quote_locked"


@pytest.mark.parametrize("subject", ["Quote\r\nBcc: someone@example.com", "Line one\nLine two"])
def test_send_rejects_header_breaking_subject(
    client: TestClient,
    seed_quote,
    transport: InMemoryMailTransport,
    subject: str,
) -> None:
    quote_id = seed_quote()

    response = client.post(f"/api/quotes/{quote_id}/send", json={"to": "client@example.com", "subject": subject})

    assert response.status_code == 422
    assert transport.outbox == []
    assert client.get("/api/deliveries").json() == []
    assert client.get(f"/api/quotes/{quote_id}").json()["status"] == "draft"


def test_list_generated_documents(client: TestClient, seed_quote) -> None:
    quote_id = seed_quote("Q-9")
    headers = _auth_headers("user-7")
    assert client.post(f"/api/quotes/{quote_id}/send", json={"to": "client@example.com"}, headers=headers).status_code == 200
    assert client.post(f"/api/quotes/{quote_id}/approve").status_code == 200
    contract = client.post(f"/api/quotes/{quote_id}/documents/contract", headers=headers)
    assert contract.status_code == 201

    response = client.get(f"/api/quotes/{quote_id}/documents")

    assert response.status_code == 200
    body = {entry["document_type"]: entry for entry in response.json()}
    assert set(body) == {"quote", "contract"}
    assert body["contract"]["id"] == contract.json()["id"]
    assert body["contract"]["url"] == "/uploads/contracts/Contract_Q_9.pdf"
    assert body["quote"]["storage_path"] == "quotes/Quote_Q_9.pdf"
    assert body["quote"]["created_by"] == "user-7"


def test_list_documents_of_unknown_quote(client: TestClient) -> None:
    response = client.get(f"/api/quotes/{uuid.uuid4()}/documents")

    assert response.status_code == 404
    assert response.json()["code"] == "quote_not_found"
