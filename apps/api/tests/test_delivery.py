from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.message import EmailMessage

import pytest
from sqlalchemy.orm import Session

from app.context import reset_correlation_id, set_correlation_id
from app.delivery.models import DeliveryLog
from app.delivery.repository import DeliveryLogRepository
from app.delivery.schemas import Attachment, DeliveryLogQuery, DeliveryStatus, OutboundMessage
from app.delivery.service import DeliveryService
from app.delivery.transport import InMemoryMailTransport, SmtpMailTransport, build_email, format_sender


pytestmark = pytest.mark.anyio


def _message(**overrides) -> OutboundMessage:  # type: ignore[no-untyped-def]
    values = {
        "to": "client@example.com",
        "subject": "Quote Q-1",
        "body": "Please find attached quote Q-1",
        "attachments": [Attachment(filename="Quote_Q-1.pdf", content=b"%PDF-1.4 test")],
        "entity_type": "quote",
        "entity_id": "quote-1",
    }
    values.update(overrides)
    return OutboundMessage(**values)


class FakeSMTP:
    instances: list[FakeSMTP] = []
    refused: dict[str, tuple[int, bytes]] = {}

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.login_args: tuple[str, str] | None = None
        self.sent: list[EmailMessage] = []
        FakeSMTP.instances.append(self)

    def __enter__(self) -> FakeSMTP:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def starttls(self) -> None:
        self.started_tls = True

    def login(self, username: str, password: str) -> None:
        self.login_args = (username, password)

    def send_message(self, message: EmailMessage) -> dict[str, tuple[int, bytes]]:
        self.sent.append(message)
        return dict(FakeSMTP.refused)


@pytest.fixture()
def fake_smtp(monkeypatch: pytest.MonkeyPatch) -> type[FakeSMTP]:
    FakeSMTP.instances = []
    FakeSMTP.refused = {}
    monkeypatch.setattr("app.delivery.transport.smtplib.SMTP", FakeSMTP)
    return FakeSMTP


def test_build_email_attaches_pdf() -> None:
    email = build_email(_message(), format_sender("noreply@jamescrm.com", "JamesCRM"))

    assert email["From"] == "JamesCRM <noreply@jamescrm.com>"
    assert email["Message-ID"].endswith("@jamescrm.com>")
    attachment = next(email.iter_attachments())
    assert attachment.get_content_type() == "application/pdf"
    assert attachment.get_filename() == "Quote_Q-1.pdf"


async def test_smtp_transport_uses_starttls_login_and_timeout(fake_smtp: type[FakeSMTP]) -> None:
    transport = SmtpMailTransport("smtp.example.com", 2525, username="mailer", password="secret", timeout=5.0)

    result = await transport.send(_message(), "noreply@jamescrm.com")

    assert result.accepted is True
    assert result.provider == "smtp"
    assert result.provider_message_id
    server = fake_smtp.instances[0]
    assert (server.host, server.port, server.timeout) == ("smtp.example.com", 2525, 5.0)
    assert server.started_tls is True
    assert server.login_args == ("mailer", "secret")
    assert server.sent[0]["To"] == "client@example.com"


async def test_smtp_transport_reports_refused_recipient(fake_smtp: type[FakeSMTP]) -> None:
    fake_smtp.refused = {"client@example.com": (550, b"mailbox unavailable")}
    transport = SmtpMailTransport("smtp.example.com", starttls=False)

    result = await transport.send(_message(), "noreply@jamescrm.com")

    assert result.accepted is False
    assert result.error == "550 mailbox unavailable"
    assert fake_smtp.instances[0].started_tls is False
    assert fake_smtp.instances[0].login_args is None


async def test_service_logs_successful_delivery(db_session: Session) -> None:
    transport = InMemoryMailTransport()
    service = DeliveryService(transport, DeliveryLogRepository(db_session), "noreply@jamescrm.com")

    result = await service.send(_message())

    assert result.accepted is True
    rows = db_session.query(DeliveryLog).all()
    assert len(rows) == 1
    assert rows[0].status == "sent"
    assert rows[0].from_address == "noreply@jamescrm.com"
    assert rows[0].attachment_name == "Quote_Q-1.pdf"
    assert rows[0].provider == "memory"
    assert rows[0].provider_message_id == result.provider_message_id
    assert rows[0].error is None


async def test_service_never_raises_for_transport_errors(db_session: Session) -> None:
    transport = InMemoryMailTransport()
    transport.reject_next(OSError("network unreachable"))
    service = DeliveryService(transport, DeliveryLogRepository(db_session), "noreply@jamescrm.com")

    result = await service.send(_message(sender="sales@jamescrm.com"))

    assert result.accepted is False
    assert result.error == "network unreachable"
    row = db_session.query(DeliveryLog).one()
    assert row.status == "failed"
    assert row.error == "network unreachable"
    assert row.from_address == "sales@jamescrm.com"
    assert transport.outbox == []


async def test_log_entry_keeps_correlation_id(db_session: Session) -> None:
    token = set_correlation_id("corr-delivery-1")
    try:
        await DeliveryService(InMemoryMailTransport(), DeliveryLogRepository(db_session), "noreply@jamescrm.com").send(_message())
    finally:
        reset_correlation_id(token)

    assert db_session.query(DeliveryLog).one().correlation_id == "corr-delivery-1"


async def test_log_query_filters(db_session: Session) -> None:
    repository = DeliveryLogRepository(db_session)
    base = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
    for offset, (to, status, entity_id) in enumerate(
        [
            ("a@example.com", "sent", "quote-1"),
            ("b@example.com", "failed", "quote-2"),
            ("a@example.com", "failed", "quote-3"),
        ]
    ):
        await repository.append(
            DeliveryLog(
                to_address=to,
                from_address="noreply@jamescrm.com",
                subject="Quote",
                status=status,
                provider="memory",
                entity_type="quote",
                entity_id=entity_id,
                created_at=base + timedelta(days=offset),
            )
        )

    by_recipient = await repository.list(DeliveryLogQuery(recipient="a@example.com"))
    assert [row.entity_id for row in by_recipient] == ["quote-3", "quote-1"]

    failed = await repository.list(DeliveryLogQuery(status=DeliveryStatus.FAILED))
    assert {row.entity_id for row in failed} == {"quote-2", "quote-3"}

    ranged = await repository.list(DeliveryLogQuery(since=base + timedelta(hours=12), until=base + timedelta(days=1, hours=1)))
    assert [row.entity_id for row in ranged] == ["quote-2"]

    by_entity = await repository.list(DeliveryLogQuery(entity_type="quote", entity_id="quote-1"))
    assert [row.to_address for row in by_entity] == ["a@example.com"]
