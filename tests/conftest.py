"""
Pytest configuration and fixtures for the report bot tests.
"""

from __future__ import annotations

import threading
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from report_bot.models import Report
from report_bot.reporting import ReportBuilder
from report_bot.repository import ReportRepository
from report_bot.schema import (
    FieldKind,
    FieldSchema,
    FieldSpec,
    boolean_validator,
    build_report_schema,
    number_validator,
    text_validator,
)
from report_bot.sessions import SessionStore


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeMessenger:
    """Records every outbound message; chats listed in ``failing`` raise."""

    def __init__(self, failing: set[int | str] | None = None, fail_documents: bool = False) -> None:
        self.failing = failing or set()
        self.fail_documents = fail_documents
        self.texts: list[tuple[int | str, str]] = []
        self.documents: list[tuple[int | str, Path, bool]] = []

    @property
    def calls(self) -> int:
        return len(self.texts) + len(self.documents)

    async def send_text(self, chat_id: int | str, text: str) -> None:
        self.texts.append((chat_id, text))
        if chat_id in self.failing:
            raise RuntimeError(f"chat {chat_id} unavailable")

    async def send_document(self, chat_id: int | str, path: Path, caption: str) -> None:
        self.documents.append((chat_id, path, path.exists()))
        if self.fail_documents:
            raise RuntimeError("upload rejected")


class FakeExporter:
    def __init__(self, tmp_path: Path, fail: bool = False) -> None:
        self.tmp_path = tmp_path
        self.fail = fail
        self.generated: list[Path] = []
        self.threads: list[int] = []

    def generate(self, report: Report) -> Path:
        self.threads.append(threading.get_ident())
        if self.fail:
            raise RuntimeError("exporter broken")
        path = self.tmp_path / f"report_{report.id}.xlsx"
        path.write_bytes(b"xlsx")
        self.generated.append(path)
        return path


class FakeMailer:
    def __init__(self, configured: bool = True, fail: bool = False) -> None:
        self.configured = configured
        self.fail = fail
        self.sent: list[Report] = []

    async def send_report(self, report: Report) -> None:
        self.sent.append(report)
        if self.fail:
            raise RuntimeError("smtp down")


class BrokenRepository(ReportRepository):
    def append(self, report: Report) -> Report:
        raise RuntimeError("disk full")


@pytest.fixture
def clock() -> FakeClock:
    """Deterministic clock starting at a fixed UTC instant."""
    return FakeClock(datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def small_schema() -> FieldSchema:
    """Three-field schema: name (text), count (number >= 0), confirmed (boolean)."""
    return FieldSchema(
        [
            FieldSpec(
                key="name",
                label="Name",
                prompt="Name?",
                kind=FieldKind.TEXT,
                validator=text_validator(),
                next_key="count",
            ),
            FieldSpec(
                key="count",
                label="Count",
                prompt="Count?",
                kind=FieldKind.NUMBER,
                validator=number_validator(integer=True),
                next_key="confirmed",
            ),
            FieldSpec(
                key="confirmed",
                label="Confirmed",
                prompt="Confirmed?",
                kind=FieldKind.BOOLEAN,
                validator=boolean_validator,
            ),
        ]
    )


@pytest.fixture
def report_schema() -> FieldSchema:
    """The production field-work schema with a fixed 'today'."""
    return build_report_schema(today=lambda: date(2026, 3, 2))


@pytest.fixture
def small_sessions(small_schema: FieldSchema, clock: FakeClock) -> SessionStore:
    return SessionStore(small_schema, ttl=timedelta(minutes=30), clock=clock)


@pytest.fixture
def sample_values() -> dict:
    """A complete set of field-work values."""
    return {
        "customer_type": "subscriber",
        "customer_name": "ООО Ромашка",
        "address": "ул. Ленина, 1",
        "phone": "+7 900 123-45-67",
        "employee": "Иванов Иван",
        "work_date": "02.03.2026",
        "sockets": 3,
        "vok1": 12.5,
        "boxes": 4,
        "corrugation": 2.25,
        "ko_big": 1,
        "ko_small": 2,
        "minimuff": True,
        "trench": 10,
        "manholes": 1,
        "comment": "Работы выполнены",
    }


@pytest.fixture
def make_report(sample_values: dict, clock: FakeClock):
    """Factory for reports with overridable values."""

    def factory(user_id: int = 100, **overrides) -> Report:
        values = {**sample_values, **overrides}
        return Report(user_id=user_id, values=values, created_at=clock())

    return factory


@pytest.fixture
def builder() -> ReportBuilder:
    return ReportBuilder()
