"""Fan-out of a completed report to its delivery channels.

The report is stored first; only a stored report is announced anywhere.
After that every channel is attempted in a fixed order and its outcome is
recorded as a :class:`ChannelResult`. A failing channel is logged and
reported to the user as a soft warning; it never undoes the stored report
and never stops the channels after it.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from .channels import Messenger
from .constants import CHANNEL_ACKNOWLEDGEMENT, CHANNEL_BROADCAST, CHANNEL_EMAIL, CHANNEL_SPREADSHEET
from .models import ChannelResult, DistributionOutcome, Report
from .reporting import ReportBuilder
from .repository import ReportRepository

logger = logging.getLogger(__name__)

PERSIST_FAILED_NOTICE = "⚠️ Не удалось сохранить отчёт. Попробуйте отправить его ещё раз через /new_report."


class Exporter(Protocol):
    def generate(self, report: Report) -> Path: ...


class Mailer(Protocol):
    @property
    def configured(self) -> bool: ...

    async def send_report(self, report: Report) -> None: ...


SUCCEEDED = ChannelResult("succeeded")
SKIPPED = ChannelResult("skipped")


def _failed(exc: BaseException) -> ChannelResult:
    return ChannelResult("failed", reason=f"{exc.__class__.__name__}: {exc}")


class DistributionPipeline:
    def __init__(
        self,
        repository: ReportRepository,
        messenger: Messenger,
        builder: ReportBuilder,
        exporter: Exporter | None = None,
        mailer: Mailer | None = None,
        broadcast_chat_id: str | None = None,
    ) -> None:
        self.repository = repository
        self.messenger = messenger
        self.builder = builder
        self.exporter = exporter
        self.mailer = mailer
        self.broadcast_chat_id = broadcast_chat_id

    async def _notify(self, chat_id: int, text: str) -> None:
        try:
            await self.messenger.send_text(chat_id, text)
        except Exception as exc:
            logger.warning("Notice to chat %s not delivered: %s", chat_id, exc)

    async def distribute(self, report: Report, chat_id: int) -> DistributionOutcome:
        logger.info("Distributing report from user %s", report.user_id)

        try:
            stored = self.repository.append(report)
        except Exception:
            logger.exception("Report from user %s was not persisted; distribution aborted", report.user_id)
            return DistributionOutcome(report=None)

        outcome = DistributionOutcome(report=stored)
        outcome.per_channel[CHANNEL_ACKNOWLEDGEMENT] = await self._acknowledge(stored, chat_id)
        outcome.per_channel[CHANNEL_EMAIL] = await self._email(stored, chat_id)
        outcome.per_channel[CHANNEL_SPREADSHEET] = await self._spreadsheet(stored, chat_id)
        outcome.per_channel[CHANNEL_BROADCAST] = await self._broadcast(stored, chat_id)

        failed = [name for name, result in outcome.per_channel.items() if result.status == "failed"]
        if failed:
            logger.warning("Report %s distributed with failed channels: %s", stored.id, ", ".join(failed))
        else:
            logger.info("Report %s distributed", stored.id)
        return outcome

    async def _acknowledge(self, report: Report, chat_id: int) -> ChannelResult:
        try:
            await self.messenger.send_text(chat_id, self.builder.build_user_message(report))
        except Exception as exc:
            logger.exception("Acknowledgement for report %s failed", report.id)
            return _failed(exc)
        return SUCCEEDED

    async def _email(self, report: Report, chat_id: int) -> ChannelResult:
        if self.mailer is None or not self.mailer.configured:
            return SKIPPED
        try:
            await self.mailer.send_report(report)
        except Exception as exc:
            logger.exception("E-mail for report %s failed", report.id)
            return _failed(exc)

        await self._notify(chat_id, "📧 Отчёт отправлен на email администратора")
        return SUCCEEDED

    async def _spreadsheet(self, report: Report, chat_id: int) -> ChannelResult:
        if self.exporter is None:
            return SKIPPED

        await self._notify(chat_id, "📊 Генерация Excel файла...")
        try:
            path = await asyncio.to_thread(self.exporter.generate, report)
            try:
                await self.messenger.send_document(chat_id, path, "📊 Ваш отчёт в формате Excel")
            finally:
                self._release(path)
        except Exception as exc:
            logger.exception("Spreadsheet for report %s failed", report.id)
            await self._notify(chat_id, "⚠️ Не удалось сгенерировать Excel файл")
            return _failed(exc)
        return SUCCEEDED

    @staticmethod
    def _release(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Temporary spreadsheet %s not removed: %s", path, exc)

    async def _broadcast(self, report: Report, chat_id: int) -> ChannelResult:
        if not self.broadcast_chat_id:
            return SKIPPED
        try:
            await self.messenger.send_text(self.broadcast_chat_id, self.builder.build_channel_message(report))
        except Exception as exc:
            logger.exception("Broadcast of report %s to %s failed", report.id, self.broadcast_chat_id)
            return _failed(exc)

        await self._notify(chat_id, "📢 Отчёт опубликован в канале")
        return SUCCEEDED
