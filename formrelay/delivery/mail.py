"""
FormRelay Mail Transport
SMTP delivery for rendered submission emails.
"""
import asyncio
import smtplib
import ssl
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Optional

import structlog

from formrelay.core.config import Settings, settings as default_settings
from formrelay.core.exceptions import TransportError
from formrelay.delivery.models import OutboundMessage


logger = structlog.get_logger(__name__)


class MailSender(ABC):
    """
    Abstract mail transport.

    A sender is obtained per request, verified, used for that request's
    messages and then closed. Implementations raise TransportError on any
    network, authentication or protocol failure.
    """

    @abstractmethod
    async def verify_connectivity(self) -> None:
        """Check that the transport is reachable and accepts our credentials."""
        pass

    @abstractmethod
    async def send(self, message: OutboundMessage) -> str:
        """Deliver a message and return its Message-ID."""
        pass

    async def close(self) -> None:
        """Release the underlying connection, if any."""
        pass

    async def __aenter__(self) -> "MailSender":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class SMTPMailSender(MailSender):
    """
    SMTP mail transport.

    Uses implicit TLS (SMTPS) when ``use_ssl`` is set, otherwise upgrades
    a plain connection with STARTTLS. Blocking smtplib calls run in a
    worker thread. One connection is opened by verify_connectivity and
    reused for every send until close.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_ssl: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.timeout = timeout
        self._connection: Optional[smtplib.SMTP] = None
        self.logger = logger.bind(transport="smtp", host=host, port=port)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SMTPMailSender":
        """Build a sender from application settings."""
        settings = settings or default_settings
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.email_user,
            password=settings.email_pass,
            use_ssl=settings.smtp_use_ssl,
            timeout=settings.smtp_timeout,
        )

    def is_configured(self) -> bool:
        """Check if host and credentials are present."""
        return bool(self.host and self.username and self.password)

    def _connect_sync(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.use_ssl:
            connection = smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout, context=context
            )
        else:
            connection = smtplib.SMTP(self.host, self.port, timeout=self.timeout)

        try:
            if not self.use_ssl:
                connection.starttls(context=context)
            connection.login(self.username, self.password)
        except BaseException:
            connection.close()
            raise
        return connection

    def _build_message(self, message: OutboundMessage) -> EmailMessage:
        mime = EmailMessage()
        mime["Subject"] = message.subject
        mime["From"] = message.sender
        mime["To"] = message.recipient
        mime["Date"] = formatdate(localtime=False, usegmt=True)
        mime["Message-ID"] = make_msgid(domain=self.host)
        if message.reply_to:
            mime["Reply-To"] = message.reply_to

        # Plain text first so clients fall back to it
        mime.set_content(message.body_text or " ")
        mime.add_alternative(message.body_html, subtype="html")
        return mime

    async def verify_connectivity(self) -> None:
        """Open and authenticate the SMTP connection."""
        if not self.is_configured():
            self.logger.warning("mail_transport_not_configured")
            raise TransportError("Mail transport host or credentials are not configured")

        if self._connection is not None:
            return

        try:
            self._connection = await asyncio.to_thread(self._connect_sync)
        except (smtplib.SMTPException, OSError) as e:
            self.logger.warning("mail_verify_failed", error=str(e))
            raise TransportError(f"SMTP connectivity check failed: {e}") from e

        self.logger.info("mail_verified")

    async def send(self, message: OutboundMessage) -> str:
        """Send a message over the verified connection."""
        if not message.to_email:
            raise TransportError("Message has no recipient address")

        if self._connection is None:
            await self.verify_connectivity()

        try:
            mime = self._build_message(message)
            await asyncio.to_thread(self._connection.send_message, mime)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            self.logger.error(
                "mail_send_failed",
                to_email=message.to_email,
                subject=message.subject,
                error=str(e),
            )
            raise TransportError(f"SMTP send failed: {e}") from e

        self.logger.info(
            "mail_sent",
            to_email=message.to_email,
            subject=message.subject,
            message_id=mime["Message-ID"],
        )
        return mime["Message-ID"]

    async def close(self) -> None:
        """Quit the SMTP session."""
        connection, self._connection = self._connection, None
        if connection is None:
            return

        try:
            await asyncio.to_thread(connection.quit)
        except (smtplib.SMTPException, OSError) as e:
            self.logger.debug("mail_quit_failed", error=str(e))
            connection.close()
