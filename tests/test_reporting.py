"""
Tests for HTML and e-mail rendering of reports.
"""

from __future__ import annotations

from dataclasses import replace

from report_bot.reporting import ReportBuilder
from report_bot.repository import ReportRepository


class TestUserMessage:
    """The acknowledgement sent back to the operator."""

    def test_totals(self, builder: ReportBuilder, make_report) -> None:
        report = replace(make_report(), id=7)
        text = builder.build_user_message(report)

        # sockets 3 + ko_big 1 + ko_small 2 + manholes 1
        assert "Всего элементов: <b>7</b> шт." in text
        # vok1 12.5 + boxes 4 + corrugation 2.25 + trench 10
        assert "Общая длина: <b>28.75</b> м" in text
        assert "Отчёт №7" in text

    def test_fields_and_comment(self, builder: ReportBuilder, make_report) -> None:
        text = builder.build_user_message(make_report())
        assert "Абонент" in text
        assert "+7 900 123-45-67" in text
        assert "✅ сварена" in text
        assert "Работы выполнены" in text

    def test_empty_comment_omitted(self, builder: ReportBuilder, make_report) -> None:
        text = builder.build_user_message(make_report(comment=""))
        assert "Комментарий" not in text

    def test_html_escaped(self, builder: ReportBuilder, make_report) -> None:
        text = builder.build_user_message(make_report(customer_name="<script>"))
        assert "<script>" not in text
        assert "&lt;script&gt;" in text

    def test_legal_entity(self, builder: ReportBuilder, make_report) -> None:
        text = builder.build_user_message(make_report(customer_type="legal_entity", minimuff=False))
        assert "Юридическое лицо" in text
        assert "❌ не сварена" in text


class TestChannelMessage:
    """The reduced public summary."""

    def test_reduced_totals(self, builder: ReportBuilder, make_report) -> None:
        text = builder.build_channel_message(make_report())
        # sockets 3 + manholes 1
        assert "Всего элементов: 4 шт." in text
        assert "Телефон" not in text
        assert "Комментарий" not in text
        assert text.endswith("#отчет #Иванов_Иван")


class TestOtherRenderings:
    """E-mail, history and statistics."""

    def test_email_parts(self, builder: ReportBuilder, make_report) -> None:
        subject, plain, html_body = builder.build_email(replace(make_report(), id=3))
        assert subject == "Отчёт №3: ООО Ромашка (02.03.2026)"
        assert "sockets: 3" in plain
        assert "Общая длина: 28.75 м" in plain
        assert "<br>" in html_body

    def test_history_newest_first(self, builder: ReportBuilder, make_report) -> None:
        repo = ReportRepository()
        for name in ["A", "B", "C"]:
            repo.append(make_report(customer_name=name))

        text = builder.build_history(repo.all(), limit=2)

        assert "последние 2 из 3" in text
        assert text.index("№3") < text.index("№2")
        assert "№1 " not in text

    def test_history_empty(self, builder: ReportBuilder) -> None:
        assert "/new_report" in builder.build_history([], limit=10)

    def test_stats(self, builder: ReportBuilder, make_report) -> None:
        repo = ReportRepository()
        repo.append(make_report(user_id=1, sockets=3))
        repo.append(make_report(user_id=2, sockets=5))

        text = builder.build_stats(repo.aggregate(["sockets", "trench"]))

        assert "Всего отчётов: <b>2</b>" in text
        assert "Сотрудников: <b>2</b>" in text
        assert "Розеток установлено: <b>8</b>" in text
        assert "Траншеи выкопано: <b>20</b>" in text

    def test_daily_summary(self, builder: ReportBuilder, make_report, clock) -> None:
        repo = ReportRepository()
        repo.append(make_report(user_id=1, sockets=3))
        repo.append(make_report(user_id=2, sockets=5, employee="Петров Пётр"))

        text = builder.build_daily_summary(clock.now.date(), repo.all(), repo.aggregate())

        assert "Сводка за 02.03.2026" in text
        assert "Отчётов: <b>2</b>" in text
        assert "Всего элементов: <b>16</b>" in text
        assert "Общая длина: <b>57.50</b> м" in text
        assert "№2 · Петров Пётр · ООО Ромашка" in text

    def test_daily_summary_empty(self, builder: ReportBuilder, clock) -> None:
        text = builder.build_daily_summary(clock.now.date(), [], ReportRepository().aggregate())
        assert "отчётов нет" in text
