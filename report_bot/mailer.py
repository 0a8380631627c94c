from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage

from .config import SmtpConfig
from .models import Report
from .reporting import ReportBuilder

logger = logging.getLogger(__name__)


class MailerError(RuntimeError):
    pass


class EmailService:
    """Sends report notifications to the administrator mailbox."""

    def __init__(self, config: SmtpConfig | None, builder: ReportBuilder) -> None:
        self.config = config
        self.builder = builder

    @property
    def configured(self) -> bool:
        return self.config is not None

    def build_message(self, report: Report) -> EmailMessage:
        if self.config is None:
            raise MailerError("SMTP is not configured")

        subject, plain_text, html_body = self.builder.build_email(report)
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.config.sender
        message["To"] = self.config.admin_email
        message.set_content(plain_text)
        message.add_alternative(html_body, subtype="html")
        return message

    def _send_blocking(self, message: EmailMessage) -> None:
        cfg = self.config
        if cfg is None:
            raise MailerError("SMTP is not configured")

        if cfg.port == 465:
            client: smtplib.SMTP = smtplib.SMTP_SSL(
                cfg.host, cfg.port, timeout=cfg.timeout_seconds, context=ssl.create_default_context()
            )
        else:
            client = smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout_seconds)

        with client:
            if cfg.use_tls and cfg.port != 465:
                client.starttls(context=ssl.create_default_context())
            if cfg.user:
                client.login(cfg.user, cfg.password)
            client.send_message(message)

    async def send_report(self, report: Report) -> None:
        message = self.build_message(report)
        try:
            await asyncio.to_thread(self._send_blocking, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailerError(f"SMTP delivery failed: {exc}") from exc
        logger.info("Report %s e-mailed to %s", report.id, message["To"])
