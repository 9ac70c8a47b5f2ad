"""Email dispatcher: reliable SMTP delivery of transactional email.

Each message gets up to three attempts, each bounded by a 45 second
timeout, with linear backoff (2s, then 4s) between them. Every failure is
retried, authentication errors included, even though those will fail the
same way again. Missing SMTP credentials fail fast with
``ConfigurationError`` before any network activity.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from pathlib import Path
from typing import Any, Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.config import get_settings
from app.exceptions import ConfigurationError, DeliveryFailedError
from app.services.smtp_pool import SmtpConfig, SMTPConnectionPool
from app.utils.retry import RetryPolicy, attempt_with_backoff

logger = logging.getLogger(__name__)
settings = get_settings()

TAG_RE = re.compile(r"<[^>]*>")


def strip_tags(html: str) -> str:
    """Best-effort plain text from HTML: drops anything that looks like a tag."""
    return TAG_RE.sub("", html)


@dataclass
class EmailMessage:
    """A single transactional email."""

    recipient: str
    subject: str
    html_body: str
    text_body: str | None = None

    @property
    def plain_text(self) -> str:
        return self.text_body if self.text_body is not None else strip_tags(self.html_body)


class EmailTransport(Protocol):
    async def send_message(self, message: MIMEMultipart) -> Any: ...

    async def close(self) -> None: ...


def smtp_config_from_settings() -> SmtpConfig:
    """Build the SMTP transport config from environment settings."""
    return SmtpConfig(
        host=settings.email_host.strip(),
        port=settings.email_port,
        username=settings.email_user.strip(),
        secret=settings.email_pass,
        from_name=settings.email_from_name,
    )


def _troubleshooting_hint(error: BaseException) -> str | None:
    text = str(error)
    if "Invalid login" in text or "Username and Password not accepted" in text or "535" in text:
        return (
            "Authentication failed: use an app password for Gmail (no spaces), "
            "or 'apikey' as the username for SendGrid"
        )
    if isinstance(error, TimeoutError) or "timed out" in text.lower() or "ETIMEDOUT" in text:
        return (
            "Connection timed out: check EMAIL_HOST and EMAIL_PORT "
            "(587 for STARTTLS, 465 for SSL)"
        )
    if "Name or service not known" in text or "getaddrinfo" in text or "ENOTFOUND" in text:
        return "Host not found: check the spelling of EMAIL_HOST"
    return None


class EmailService:
    """Service for sending transactional email over pooled SMTP."""

    def __init__(
        self,
        config: SmtpConfig,
        transport: EmailTransport | None = None,
        retry_policy: RetryPolicy | None = None,
        attempt_timeout: float = 45.0,
        sleep=asyncio.sleep,
        pool_max_connections: int = 5,
        pool_max_messages: int = 100,
    ):
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy()
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep
        self._transport = transport
        self._pool_max_connections = pool_max_connections
        self._pool_max_messages = pool_max_messages

        templates_path = Path(__file__).parent.parent / "templates" / "emails"
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(templates_path)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    @property
    def transport(self) -> EmailTransport:
        """Get or create the pooled SMTP transport lazily."""
        if self._transport is None:
            self._transport = SMTPConnectionPool(
                self.config,
                max_connections=self._pool_max_connections,
                max_messages=self._pool_max_messages,
            )
        return self._transport

    def _render_template(self, template_name: str, context: dict[str, Any]) -> str:
        """Render an email template with the given context."""
        template = self.jinja_env.get_template(template_name)
        return template.render(**context)

    def _check_config(self) -> None:
        missing = self.config.missing_fields()
        if missing:
            logger.error(f"Email configuration missing: {', '.join(missing)}")
            raise ConfigurationError(
                "Email configuration is incomplete (EMAIL_HOST, EMAIL_USER and EMAIL_PASS are required)",
                missing=missing,
            )

    def build_mime(self, message: EmailMessage) -> tuple[MIMEMultipart, str]:
        """Build the MIME message and its Message-ID."""
        domain = self.config.username.rpartition("@")[2] or None
        message_id = make_msgid(domain=domain)

        msg = MIMEMultipart("alternative")
        msg["From"] = self.config.from_address
        msg["To"] = message.recipient
        msg["Subject"] = message.subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = message_id

        msg.attach(MIMEText(message.plain_text, "plain", "utf-8"))
        msg.attach(MIMEText(message.html_body, "html", "utf-8"))
        return msg, message_id

    async def send(self, message: EmailMessage) -> str:
        """Deliver a message and return its Message-ID.

        Raises:
            ConfigurationError: SMTP host, username or secret is unset.
            DeliveryFailedError: every attempt failed; ``last_error`` holds the cause.
        """
        self._check_config()

        start = time.monotonic()
        logger.info(
            f"Sending email to {message.recipient} via {self.config.host}:{self.config.port} "
            f"(secure={self.config.secure}): {message.subject}"
        )

        mime, message_id = self.build_mime(message)
        timeout_ms = int(self.attempt_timeout * 1000)
        attempts = 0

        async def attempt() -> None:
            nonlocal attempts
            attempts += 1
            try:
                await asyncio.wait_for(self.transport.send_message(mime), timeout=self.attempt_timeout)
            except TimeoutError:
                raise TimeoutError(f"Email operation timed out after {timeout_ms}ms") from None

        try:
            await attempt_with_backoff(
                attempt,
                self.retry_policy,
                sleep=self._sleep,
                label=f"Email to {message.recipient}",
            )
        except Exception as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.error(
                f"Email delivery to {message.recipient} failed after {attempts} attempt(s) "
                f"in {duration_ms}ms: {e}"
            )
            hint = _troubleshooting_hint(e)
            if hint:
                logger.error(hint)
            raise DeliveryFailedError(
                f"Email delivery failed: {e}", last_error=e, attempts=attempts
            ) from e

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"Email sent to {message.recipient}: {message_id} ({duration_ms}ms)")
        return message_id

    async def send_template(
        self,
        to: str,
        subject: str,
        template_name: str,
        context: dict[str, Any],
    ) -> str:
        """Render a Jinja2 template and send it."""
        html_body = self._render_template(
            template_name, {"app_name": settings.app_name, **context}
        )
        return await self.send(EmailMessage(recipient=to, subject=subject, html_body=html_body))

    async def send_registration_confirmation(
        self,
        to: str,
        participant_name: str,
        event_name: str,
        registration_id: str,
        event_date: str | None = None,
    ) -> str:
        """Confirm an event registration to the participant."""
        return await self.send_template(
            to=to,
            subject=f"Registration confirmed: {event_name}",
            template_name="registration_confirmation.html",
            context={
                "participant_name": participant_name,
                "event_name": event_name,
                "registration_id": registration_id,
                "event_date": event_date,
            },
        )

    async def send_test_email(self, to: str) -> str:
        """Send a short message confirming the SMTP settings work."""
        return await self.send_template(
            to=to,
            subject=f"{settings.app_name} test email",
            template_name="test_email.html",
            context={"host": self.config.host, "port": self.config.port},
        )

    async def close(self) -> None:
        """Release pooled connections."""
        if self._transport is not None:
            await self._transport.close()


# Singleton instance
_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get the email service singleton."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService(
            smtp_config_from_settings(),
            retry_policy=RetryPolicy(
                max_attempts=settings.email_max_attempts,
                base_delay_ms=settings.email_retry_base_delay_ms,
            ),
            attempt_timeout=settings.email_timeout_seconds,
            pool_max_connections=settings.email_pool_max_connections,
            pool_max_messages=settings.email_pool_max_messages,
        )
    return _email_service


async def close_email_service() -> None:
    """Close the singleton's transport, if one was created."""
    global _email_service
    if _email_service is not None:
        await _email_service.close()
        _email_service = None
