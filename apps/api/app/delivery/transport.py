from __future__ import annotations

import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, make_msgid, parseaddr
from typing import Protocol

from starlette.concurrency import run_in_threadpool

from app.delivery.schemas import DeliveryResult, OutboundMessage


class MailTransport(Protocol):
    name: str

    async def send(self, message: OutboundMessage, sender: str) -> DeliveryResult: ...


def build_email(message: OutboundMessage, sender: str) -> EmailMessage:
    email = EmailMessage()
    email["From"] = sender
    email["To"] = message.to
    email["Subject"] = message.subject
    email["Message-ID"] = make_msgid(domain=parseaddr(sender)[1].rpartition("@")[2] or None)
    email.set_content(message.body)
    for attachment in message.attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        email.add_attachment(attachment.content, maintype=maintype, subtype=subtype or "octet-stream", filename=attachment.filename)
    return email


class SmtpMailTransport:
    """Delivers through an SMTP relay. Raises on connection, auth and timeout failures."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        username: str | None = None,
        password: str | None = None,
        starttls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    async def send(self, message: OutboundMessage, sender: str) -> DeliveryResult:
        return await run_in_threadpool(self._send, message, sender)

    def _send(self, message: OutboundMessage, sender: str) -> DeliveryResult:
        email = build_email(message, sender)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.starttls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password or "")
            refused = server.send_message(email)

        message_id = str(email["Message-ID"])
        if refused:
            code, reason = refused.get(message.to, next(iter(refused.values())))
            error = reason.decode("utf-8", "replace") if isinstance(reason, bytes) else str(reason)
            return DeliveryResult(accepted=False, provider=self.name, provider_message_id=message_id, error=f"{code} {error}")
        return DeliveryResult(accepted=True, provider=self.name, provider_message_id=message_id)


@dataclass
class InMemoryMailTransport:
    """Keeps sent messages in ``outbox``; used for local runs and tests."""

    name: str = "memory"
    outbox: list[EmailMessage] = field(default_factory=list)
    _pending_errors: list[Exception | str] = field(default_factory=list)

    def reject_next(self, error: Exception | str) -> None:
        """Fail the next send: an exception is raised, a string is returned as a refusal."""
        self._pending_errors.append(error)

    async def send(self, message: OutboundMessage, sender: str) -> DeliveryResult:
        if self._pending_errors:
            error = self._pending_errors.pop(0)
            if isinstance(error, Exception):
                raise error
            return DeliveryResult(accepted=False, provider=self.name, error=error)

        email = build_email(message, sender)
        self.outbox.append(email)
        return DeliveryResult(accepted=True, provider=self.name, provider_message_id=str(email["Message-ID"]))


def format_sender(address: str, display_name: str | None = None) -> str:
    return formataddr((display_name, address)) if display_name else address
