from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.worksheet.worksheet import Worksheet

from .constants import ITEM_FIELDS, LENGTH_FIELDS
from .models import Report
from .reporting import ReportBuilder
from .schema import FieldKind, FieldSchema

logger = logging.getLogger(__name__)


class ExportError(RuntimeError):
    pass


class SpreadsheetExporter:
    """Writes reports to temporary ``.xlsx`` files; callers delete them after use."""

    def __init__(self, exports_dir: Path, schema: FieldSchema) -> None:
        self.exports_dir = exports_dir
        self.schema = schema

    def _new_path(self, stem: str) -> Path:
        self.exports_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        return self.exports_dir / f"{stem}_{timestamp}_{uuid.uuid4().hex[:8]}.xlsx"

    def _cell(self, key: str, value: Any) -> Any:
        if key not in self.schema:
            return value
        spec = self.schema.get(key)
        if spec.kind is FieldKind.BOOLEAN:
            return "Да" if value else "Нет"
        if spec.kind is FieldKind.CHOICE:
            for option in spec.options:
                if option.value == value:
                    return option.label
        return value

    @staticmethod
    def _autosize(ws: Worksheet) -> None:
        for column in ws.columns:
            width = max(len(str(cell.value or "")) for cell in column)
            ws.column_dimensions[column[0].column_letter].width = min(max(width + 2, 10), 60)

    def _save(self, wb: Workbook, path: Path) -> Path:
        try:
            wb.save(path)
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise ExportError(f"Failed to write spreadsheet {path}: {exc}") from exc
        logger.info("Spreadsheet written: %s", path)
        return path

    def generate(self, report: Report) -> Path:
        wb = Workbook()
        ws = wb.active
        ws.title = f"Отчёт {report.id}"

        ws.append(["Поле", "Значение"])
        for cell in ws[1]:
            cell.font = Font(bold=True)

        ws.append(["Номер отчёта", report.id])
        ws.append(["Создан (UTC)", report.created_at.strftime("%Y-%m-%d %H:%M:%S")])
        for spec in self.schema:
            if spec.key not in report.values:
                continue
            label = f"{spec.label}, {spec.unit}" if spec.unit else spec.label
            ws.append([label, self._cell(spec.key, report.values[spec.key])])

        ws.append([])
        ws.append(["Всего элементов, шт.", ReportBuilder.total(report, ITEM_FIELDS)])
        ws.append(["Общая длина, м", round(ReportBuilder.total(report, LENGTH_FIELDS), 2)])

        self._autosize(ws)
        return self._save(wb, self._new_path(f"report_{report.id}"))

    def generate_summary(self, reports: Sequence[Report], title: str = "Отчёты") -> Path:
        if not reports:
            raise ExportError("No reports to export")

        wb = Workbook()
        ws = wb.active
        ws.title = title[:31]

        specs = list(self.schema)
        header = ["№", "Пользователь", "Создан (UTC)"] + [
            f"{s.label}, {s.unit}" if s.unit else s.label for s in specs
        ]
        ws.append(header)
        for cell in ws[1]:
            cell.font = Font(bold=True)

        for report in reports:
            row = [report.id, report.user_id, report.created_at.strftime("%Y-%m-%d %H:%M:%S")]
            row.extend(self._cell(s.key, report.get(s.key)) for s in specs)
            ws.append(row)

        totals_row: list[Any] = ["ИТОГО", "", ""]
        for spec in specs:
            if spec.kind is FieldKind.NUMBER:
                totals_row.append(sum(ReportBuilder.as_number(r.get(spec.key)) for r in reports))
            else:
                totals_row.append("")
        ws.append(totals_row)
        for cell in ws[ws.max_row]:
            cell.font = Font(bold=True)

        self._autosize(ws)
        return self._save(wb, self._new_path("reports_summary"))
