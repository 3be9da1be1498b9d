"""Email provider implementations used for stock alerts."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List, Protocol

from services.common import ServiceSettings

_LOGGER = logging.getLogger(__name__)


class EmailProvider(Protocol):
    async def send(self, *, recipient: str, subject: str, html_body: str) -> None: ...


@dataclass(slots=True)
class SentEmail:
    recipient: str
    subject: str
    html_body: str


class InMemoryEmailProvider:
    """Simple provider storing sent emails for inspection during tests and local runs."""

    def __init__(self) -> None:
        self.sent: List[SentEmail] = []

    async def send(self, *, recipient: str, subject: str, html_body: str) -> None:
        self.sent.append(SentEmail(recipient=recipient, subject=subject, html_body=html_body))


class SmtpEmailProvider:
    """SMTP delivery run in a worker thread so the event loop stays free."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout_seconds = timeout_seconds

    def _build_message(self, recipient: str, subject: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable email client.")
        message.add_alternative(html_body, subtype="html")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)

    async def send(self, *, recipient: str, subject: str, html_body: str) -> None:
        message = self._build_message(recipient, subject, html_body)
        await asyncio.to_thread(self._deliver, message)
        _LOGGER.debug("Delivered email to %s via %s:%s", recipient, self.host, self.port)


def build_email_provider(settings: ServiceSettings) -> EmailProvider:
    """Return the provider selected by ``notification_provider``."""

    if settings.notification_provider == "smtp":
        if not settings.smtp_host:
            raise RuntimeError("notification_provider is 'smtp' but smtp_host is not configured")
        return SmtpEmailProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_sender,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout_seconds=settings.smtp_timeout_seconds,
        )
    return InMemoryEmailProvider()
