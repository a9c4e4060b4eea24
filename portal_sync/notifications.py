"""Notification collaborators: tell subscribers what was loaded."""

from __future__ import annotations

import logging
import mimetypes
import smtplib
from email.message import EmailMessage
from pathlib import Path
from typing import Iterable, Protocol, Sequence

from .config import Settings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(
        self,
        subject: str,
        body: str,
        recipients: Sequence[str],
        attachments: Iterable[Path] = (),
    ) -> bool: ...


class LogNotifier:
    """Write notifications to the log; used when no mail server is configured."""

    def send(self, subject, body, recipients, attachments=()) -> bool:
        names = [Path(item).name for item in attachments]
        logger.info("Notification '%s' for %s (attachments: %s)\n%s", subject, list(recipients), names, body)
        return True


class SmtpNotifier:
    """Send plain-text mail with optional file attachments.

    Failures are logged and reported as False, never raised.
    """

    def __init__(
        self,
        host: str,
        port: int = 25,
        sender: str = "portal-sync@localhost",
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        timeout: float = 60.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> SmtpNotifier:
        return cls(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_from,
            settings.smtp_username,
            settings.smtp_password,
            settings.smtp_use_tls,
        )

    def send(self, subject, body, recipients, attachments=()) -> bool:
        recipients = list(recipients)
        if not recipients:
            logger.debug("No subscribers for '%s'", subject)
            return True
        mail = EmailMessage()
        mail["Subject"] = subject
        mail["From"] = self.sender
        mail["To"] = ", ".join(recipients)
        mail.set_content(body)
        try:
            for attachment in attachments:
                self._attach(mail, Path(attachment))
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(mail)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send notification '%s': %s", subject, exc)
            return False
        logger.info("Notification '%s' sent to %s", subject, ", ".join(recipients))
        return True

    @staticmethod
    def _attach(mail: EmailMessage, path: Path) -> None:
        content_type, _ = mimetypes.guess_type(path.name)
        maintype, subtype = (content_type or "application/octet-stream").split("/", 1)
        mail.add_attachment(path.read_bytes(), maintype=maintype, subtype=subtype, filename=path.name)


def build_notifier(settings: Settings) -> Notifier:
    if settings.smtp_host:
        return SmtpNotifier.from_settings(settings)
    return LogNotifier()
