"""
Tests for the administrator e-mail channel.
"""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import replace
from email.message import EmailMessage

import pytest

from report_bot.config import SmtpConfig
from report_bot.mailer import EmailService, MailerError
from report_bot.reporting import ReportBuilder


@pytest.fixture
def smtp_config() -> SmtpConfig:
    return SmtpConfig(
        host="smtp.example.com",
        port=587,
        user="bot@example.com",
        password="secret",
        sender="bot@example.com",
        admin_email="admin@example.com",
    )


class TestEmailService:
    def test_unconfigured(self, builder: ReportBuilder, make_report) -> None:
        service = EmailService(None, builder)
        assert service.configured is False
        with pytest.raises(MailerError):
            service.build_message(make_report())
        with pytest.raises(MailerError):
            service._send_blocking(EmailMessage())

    def test_message_headers_and_parts(self, smtp_config: SmtpConfig, builder: ReportBuilder, make_report) -> None:
        message = EmailService(smtp_config, builder).build_message(replace(make_report(), id=4))

        assert message["To"] == "admin@example.com"
        assert message["From"] == "bot@example.com"
        assert message["Subject"].startswith("Отчёт №4")
        assert message.get_body(preferencelist=("html",)) is not None
        assert message.get_body(preferencelist=("plain",)) is not None

    def test_send_uses_blocking_client(
        self, smtp_config: SmtpConfig, builder: ReportBuilder, make_report, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        service = EmailService(smtp_config, builder)
        sent = []
        monkeypatch.setattr(service, "_send_blocking", lambda message: sent.append(message))

        asyncio.run(service.send_report(make_report()))

        assert len(sent) == 1

    def test_smtp_errors_wrapped(
        self, smtp_config: SmtpConfig, builder: ReportBuilder, make_report, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        service = EmailService(smtp_config, builder)

        def refuse(message) -> None:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

        monkeypatch.setattr(service, "_send_blocking", refuse)

        with pytest.raises(MailerError):
            asyncio.run(service.send_report(make_report()))
