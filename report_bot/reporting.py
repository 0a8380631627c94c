from __future__ import annotations

import html
import re
from datetime import date
from typing import Any, Sequence

from .constants import CHANNEL_ITEM_FIELDS, DATE_FORMAT, ITEM_FIELDS, LENGTH_FIELDS
from .models import Aggregate, Report


class ReportBuilder:
    """Renders reports as Telegram HTML and e-mail bodies."""

    @staticmethod
    def as_number(value: Any) -> float:
        if isinstance(value, bool):
            return 0.0
        try:
            return float(value or 0)
        except (TypeError, ValueError):
            return 0.0

    @classmethod
    def _fmt(cls, value: Any) -> str:
        number = cls.as_number(value)
        if number.is_integer():
            return str(int(number))
        return f"{number:.2f}".rstrip("0").rstrip(".")

    @staticmethod
    def _text(report: Report, key: str) -> str:
        return html.escape(str(report.get(key) or "—"))

    @staticmethod
    def _customer_type(report: Report) -> str:
        return "Абонент" if report.get("customer_type") == "subscriber" else "Юридическое лицо"

    @staticmethod
    def _hashtag(value: Any) -> str:
        tag = re.sub(r"\W+", "_", str(value or "").strip()).strip("_")
        return f"#{tag}" if tag else ""

    @classmethod
    def total(cls, report: Report, keys: Sequence[str]) -> float:
        return sum(cls.as_number(report.get(key)) for key in keys)

    def build_user_message(self, report: Report) -> str:
        total_items = self.total(report, ITEM_FIELDS)
        total_length = self.total(report, LENGTH_FIELDS)
        minimuff = "✅ сварена" if report.get("minimuff") else "❌ не сварена"

        lines: list[str] = []
        lines.append("<b>📊 ВАШ ОТЧЁТ УСПЕШНО СОХРАНЁН</b>")
        lines.append("")
        lines.append(f"<b>🏢 Заказчик:</b> {self._customer_type(report)}")
        lines.append(f"<b>📝 Название:</b> {self._text(report, 'customer_name')}")
        lines.append(f"<b>📍 Адрес:</b> {self._text(report, 'address')}")
        lines.append(f"<b>📞 Телефон:</b> {self._text(report, 'phone')}")
        lines.append(f"<b>👷 Сотрудник:</b> {self._text(report, 'employee')}")
        lines.append(f"<b>📅 Дата:</b> {self._text(report, 'work_date')}")
        lines.append("")

        lines.append("<b>🔧 Монтажные работы:</b>")
        lines.append(f"• Розетки: <b>{self._fmt(report.get('sockets'))}</b> шт.")
        lines.append(f"• ВОК1: <b>{self._fmt(report.get('vok1'))}</b> м")
        lines.append(f"• Коробы: <b>{self._fmt(report.get('boxes'))}</b> м")
        lines.append(f"• Гофра: <b>{self._fmt(report.get('corrugation'))}</b> м")
        lines.append(f"• КО большая: <b>{self._fmt(report.get('ko_big'))}</b> шт.")
        lines.append(f"• КО малая: <b>{self._fmt(report.get('ko_small'))}</b> шт.")
        lines.append(f"• Минимуфта: <b>{minimuff}</b>")
        lines.append("")

        lines.append("<b>🏗️ Земляные работы:</b>")
        lines.append(f"• Траншея: <b>{self._fmt(report.get('trench'))}</b> м")
        lines.append(f"• Колодцы: <b>{self._fmt(report.get('manholes'))}</b> шт.")
        lines.append("")

        comment = str(report.get("comment") or "").strip()
        if comment:
            lines.append("<b>💬 Комментарий:</b>")
            lines.append(html.escape(comment))
            lines.append("")

        lines.append("<b>📈 ИТОГО:</b>")
        lines.append(f"• Всего элементов: <b>{self._fmt(total_items)}</b> шт.")
        lines.append(f"• Общая длина: <b>{total_length:.2f}</b> м")
        lines.append("")
        lines.append(f"<i>Отчёт №{report.id} сохранён в системе.</i>")
        return "\n".join(lines)

    def build_channel_message(self, report: Report) -> str:
        total_items = self.total(report, CHANNEL_ITEM_FIELDS)
        tags = " ".join(t for t in ["#отчет", self._hashtag(report.get("employee"))] if t)

        lines = [
            "<b>📊 НОВЫЙ ОТЧЁТ О РАБОТАХ</b>",
            "",
            f"<b>Заказчик:</b> {self._text(report, 'customer_name')}",
            f"<b>Адрес:</b> {self._text(report, 'address')}",
            f"<b>Сотрудник:</b> {self._text(report, 'employee')}",
            "",
            "<b>Основные показатели:</b>",
            f"• Розетки: {self._fmt(report.get('sockets'))} шт.",
            f"• Траншея: {self._fmt(report.get('trench'))} м",
            f"• Колодцы: {self._fmt(report.get('manholes'))} шт.",
            f"• Всего элементов: {self._fmt(total_items)} шт.",
            "",
            f"<b>Дата:</b> {self._text(report, 'work_date')}",
            "",
            tags,
        ]
        return "\n".join(lines)

    def build_email(self, report: Report) -> tuple[str, str, str]:
        """Return ``(subject, plain_text, html_body)`` for the admin mailbox."""
        subject = f"Отчёт №{report.id}: {report.get('customer_name') or '—'} ({report.get('work_date') or '—'})"
        html_body = self.build_user_message(report).replace("\n", "<br>\n")

        plain_lines = [
            f"Отчёт №{report.id}",
            f"Пользователь Telegram: {report.user_id}",
            f"Создан: {report.created_at.isoformat()}",
            "",
        ]
        for key, value in report.values.items():
            plain_lines.append(f"{key}: {value}")
        plain_lines.append("")
        plain_lines.append(f"Всего элементов: {self._fmt(self.total(report, ITEM_FIELDS))} шт.")
        plain_lines.append(f"Общая длина: {self.total(report, LENGTH_FIELDS):.2f} м")
        return subject, "\n".join(plain_lines), html_body

    def build_history(self, reports: Sequence[Report], limit: int) -> str:
        if not reports:
            return "У вас пока нет отчётов. Нажмите /new_report, чтобы создать первый."

        shown = list(reports)[-limit:]
        lines = [f"<b>📁 Ваши отчёты</b> (последние {len(shown)} из {len(reports)})", ""]
        for report in reversed(shown):
            lines.append(
                f"№{report.id} · {self._text(report, 'work_date')} · {self._text(report, 'customer_name')} · "
                f"{self._fmt(self.total(report, ITEM_FIELDS))} шт. / {self.total(report, LENGTH_FIELDS):.2f} м"
            )
        return "\n".join(lines)

    def build_daily_summary(self, day: date, reports: Sequence[Report], aggregate: Aggregate) -> str:
        title = f"<b>🗓 Сводка за {day.strftime(DATE_FORMAT)}</b>"
        if not reports:
            return f"{title}\n\nЗа сегодня отчётов нет."

        items = sum(aggregate.totals.get(key, 0) for key in ITEM_FIELDS)
        length = sum(aggregate.totals.get(key, 0) for key in LENGTH_FIELDS)
        lines = [
            title,
            "",
            f"• Отчётов: <b>{aggregate.total_reports}</b>",
            f"• Сотрудников: <b>{aggregate.unique_users}</b>",
            f"• Розеток: <b>{self._fmt(aggregate.totals.get('sockets'))}</b> шт.",
            f"• Всего элементов: <b>{self._fmt(items)}</b> шт.",
            f"• Общая длина: <b>{length:.2f}</b> м",
            "",
        ]
        for report in reports:
            lines.append(
                f"№{report.id} · {self._text(report, 'employee')} · {self._text(report, 'customer_name')}"
            )
        return "\n".join(lines)

    def build_stats(self, aggregate: Aggregate) -> str:
        last_activity = (
            aggregate.last_activity.strftime(f"{DATE_FORMAT} %H:%M") if aggregate.last_activity else "нет данных"
        )
        return "\n".join(
            [
                "<b>📈 Статистика</b>",
                "",
                f"• Всего отчётов: <b>{aggregate.total_reports}</b>",
                f"• Сотрудников: <b>{aggregate.unique_users}</b>",
                f"• Розеток установлено: <b>{self._fmt(aggregate.totals.get('sockets'))}</b> шт.",
                f"• Траншеи выкопано: <b>{self._fmt(aggregate.totals.get('trench'))}</b> м",
                f"• Последняя активность: {last_activity} (UTC)",
            ]
        )
