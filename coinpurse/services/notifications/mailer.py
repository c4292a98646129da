"""
Notification Service (budget alerts)

The budget evaluator only knows one capability: send(to, subject, body).
How the message travels is up to the implementation:

- SmtpMailer: plain SMTP with STARTTLS, run off the event loop
- LogOnlyNotifier: writes the alert to the structured log (default when
  SMTP is disabled, and handy in development)

Delivery errors are raised as NotificationError. Callers decide whether
that matters; the budget evaluator logs and ignores it.
"""

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Optional

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from coinpurse.config import NotificationSettings, get_settings


logger = structlog.get_logger(__name__)


class NotificationError(Exception):
    """A notification could not be delivered."""
    pass


class NotifierInterface(ABC):
    """Anything that can deliver a short message to a recipient."""

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> None:
        """
        Deliver a message.

        Raises:
            NotificationError: If delivery failed
        """
        pass


class LogOnlyNotifier(NotifierInterface):
    """Records notifications in the log instead of delivering them."""

    async def send(self, to: str, subject: str, body: str) -> None:
        logger.info("notification_logged", to=to, subject=subject, body=body)


class SmtpMailer(NotifierInterface):
    """
    SMTP delivery.

    smtplib is blocking, so each send runs in a worker thread. Transient
    SMTP/socket errors are retried a few times before giving up.
    """

    def __init__(self, settings: Optional[NotificationSettings] = None):
        self._settings = settings or get_settings().notifications

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._settings.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        settings = self._settings
        with smtplib.SMTP(
            settings.host,
            settings.port,
            timeout=settings.timeout_seconds,
        ) as smtp:
            if settings.use_tls:
                smtp.starttls()
            if settings.username:
                smtp.login(settings.username, settings.password or "")
            smtp.send_message(message)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((smtplib.SMTPException, OSError)),
        reraise=True,
    )
    async def _send_with_retry(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._deliver, message)

    async def send(self, to: str, subject: str, body: str) -> None:
        message = self._build_message(to, subject, body)
        try:
            await self._send_with_retry(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send email to {to}: {e}") from e
        logger.info("notification_sent", to=to, subject=subject)


def create_notifier(settings: Optional[NotificationSettings] = None) -> NotifierInterface:
    """Pick the notifier implied by configuration."""
    settings = settings or get_settings().notifications
    if settings.enabled:
        return SmtpMailer(settings)
    return LogOnlyNotifier()
