from __future__ import annotations

import itertools
import json
import logging
import os
import tempfile
from collections import defaultdict
from dataclasses import replace
from datetime import date, timezone
from pathlib import Path
from typing import Protocol, Sequence

from .models import Aggregate, Report, UserSummary

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    pass


class DurableMirror(Protocol):
    def write(self, user_id: int, reports: Sequence[Report]) -> None: ...

    def read_all(self) -> dict[int, list[Report]]: ...


class JsonMirror:
    """One ``reports_<user_id>.json`` file per user, rewritten on every append."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir

    def path_for(self, user_id: int) -> Path:
        return self.storage_dir / f"reports_{user_id}.json"

    def write(self, user_id: int, reports: Sequence[Report]) -> None:
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        payload = [report.to_dict() for report in reports]

        fd, tmp_name = tempfile.mkstemp(dir=self.storage_dir, prefix=".reports_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path_for(user_id))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def read_all(self) -> dict[int, list[Report]]:
        restored: dict[int, list[Report]] = {}
        if not self.storage_dir.exists():
            return restored

        for file_path in sorted(self.storage_dir.glob("reports_*.json")):
            try:
                with file_path.open("r", encoding="utf-8") as f:
                    payload = json.load(f)
                reports = [Report.from_dict(item) for item in payload]
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Skip unreadable report mirror '%s': %s", file_path, exc)
                continue
            if reports:
                restored[reports[0].user_id] = reports
        return restored


class ReportRepository:
    """Append-only store of completed reports.

    The in-memory lists are the source of truth for the running process;
    the mirror is a crash-recovery copy.
    """

    def __init__(self, mirror: DurableMirror | None = None) -> None:
        self.mirror = mirror
        self._by_user: dict[int, list[Report]] = {}
        self._order: list[Report] = []
        self._ids: set[int] = set()
        self._id_counter = itertools.count(1)

    def __len__(self) -> int:
        return len(self._order)

    def _next_id(self) -> int:
        report_id = next(self._id_counter)
        while report_id in self._ids:
            report_id = next(self._id_counter)
        return report_id

    def append(self, report: Report) -> Report:
        if report.id is None:
            report = replace(report, id=self._next_id())
        elif report.id in self._ids:
            raise PersistenceError(f"Report {report.id} is already stored")

        user_reports = self._by_user.setdefault(report.user_id, [])
        user_reports.append(report)
        self._order.append(report)
        self._ids.add(report.id)

        if self.mirror is not None:
            try:
                self.mirror.write(report.user_id, list(user_reports))
            except Exception:
                logger.exception("Failed to mirror reports for user %s", report.user_id)

        logger.info("Stored report %s for user %s", report.id, report.user_id)
        return report

    def restore(self) -> int:
        """Load mirrored reports; ids continue above the highest restored one."""
        if self.mirror is None:
            return 0

        restored = self.mirror.read_all()
        loaded = sorted(
            (r for reports in restored.values() for r in reports if r.id is not None and r.id not in self._ids),
            key=lambda r: (r.created_at, r.id),
        )
        for report in loaded:
            self._by_user.setdefault(report.user_id, []).append(report)
            self._order.append(report)
            self._ids.add(report.id)

        if self._ids:
            self._id_counter = itertools.count(max(self._ids) + 1)
        logger.info("Restored %s reports from mirror", len(loaded))
        return len(loaded)

    def all_for_user(self, user_id: int) -> list[Report]:
        return list(self._by_user.get(user_id, []))

    def all(self) -> list[Report]:
        return list(self._order)

    def users(self) -> list[UserSummary]:
        summaries: list[UserSummary] = []
        for user_id, reports in self._by_user.items():
            if not reports:
                continue
            last = reports[-1]
            summaries.append(
                UserSummary(
                    user_id=user_id,
                    name=str(last.get("employee") or last.author or "Неизвестно"),
                    reports_count=len(reports),
                    last_activity=last.created_at,
                    last_customer=last.get("customer_name"),
                )
            )
        return summaries

    def created_on(self, day: date) -> list[Report]:
        """Reports created on ``day`` (UTC calendar date)."""
        return [r for r in self._order if r.created_at.astimezone(timezone.utc).date() == day]

    def aggregate(
        self,
        numeric_keys: Sequence[str] | None = None,
        reports: Sequence[Report] | None = None,
    ) -> Aggregate:
        reports = self.all() if reports is None else list(reports)
        totals: dict[str, float] = defaultdict(float)

        for report in reports:
            for key, value in report.values.items():
                if numeric_keys is not None and key not in numeric_keys:
                    continue
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    continue
                totals[key] += value

        if numeric_keys is not None:
            for key in numeric_keys:
                totals.setdefault(key, 0)

        return Aggregate(
            total_reports=len(reports),
            unique_users=len({r.user_id for r in reports}),
            totals=dict(totals),
            last_activity=max((r.created_at for r in reports), default=None),
        )
