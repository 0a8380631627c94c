from __future__ import annotations

import asyncio
import logging
from typing import Any

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update, User
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from .channels import options_keyboard
from .constants import ANSWER_CALLBACK_PREFIX, MY_REPORTS_LIMIT, NEW_REPORT_CALLBACK
from .dialogue import DialogueManager
from .excel import ExportError, SpreadsheetExporter
from .models import InboundEvent, Reply, Submit, Transition
from .pipeline import PERSIST_FAILED_NOTICE, DistributionPipeline
from .reporting import ReportBuilder
from .repository import ReportRepository
from .sessions import utc_now

logger = logging.getLogger(__name__)


HELP_TEXT = (
    "Команды:\n"
    "/new_report - заполнить новый отчёт о работах\n"
    "/cancel - отменить заполнение текущего отчёта\n"
    "/status - на каком вопросе вы остановились\n"
    "/my_reports - ваши последние отчёты\n"
    "/excel - все ваши отчёты одним Excel файлом\n"
    "/stats - общая статистика\n"
    "/summary - сводка за сегодня\n"
    "/help - подсказка по командам"
)


def _service(context: ContextTypes.DEFAULT_TYPE, key: str) -> Any:
    return context.application.bot_data[key]


def _author(user: User) -> str:
    if user.username:
        return f"{user.full_name} (@{user.username})"
    return user.full_name


async def _reply(update: Update, effect: Reply) -> None:
    if update.effective_message is None:
        return

    keyboard = options_keyboard(effect.field_key, effect.options) if effect.field_key else None
    try:
        await update.effective_message.reply_text(
            effect.text,
            parse_mode=ParseMode.HTML,
            reply_markup=keyboard,
        )
    except TelegramError as exc:
        logger.warning("Reply not delivered: %s", exc)


async def _apply(update: Update, context: ContextTypes.DEFAULT_TYPE, transition: Transition) -> None:
    # Submissions are stored before any reply goes out.
    for effect in transition.effects:
        if not isinstance(effect, Submit):
            continue
        pipeline: DistributionPipeline = _service(context, "pipeline")
        chat_id = update.effective_chat.id if update.effective_chat is not None else effect.report.user_id
        outcome = await pipeline.distribute(effect.report, chat_id=chat_id)
        if not outcome.persisted:
            await _reply(update, Reply(PERSIST_FAILED_NOTICE))

    for effect in transition.effects:
        if isinstance(effect, Reply):
            await _reply(update, effect)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    dialogue: DialogueManager = _service(context, "dialogue")

    welcome_lines = [
        f"Здравствуйте, {update.effective_user.first_name}!",
        "Я собираю отчёты о выполненных монтажных и земляных работах.",
        "Заполненный отчёт сохраняется, приходит вам в виде сообщения и Excel файла",
        "и при необходимости пересылается администратору.",
    ]
    if dialogue.progress(update.effective_user.id) is not None:
        welcome_lines.append("\nУ вас есть незавершённый отчёт. Продолжайте отвечать или используйте /cancel.")

    keyboard = InlineKeyboardMarkup([[InlineKeyboardButton("📝 Новый отчёт", callback_data=NEW_REPORT_CALLBACK)]])
    await update.effective_message.reply_text("\n".join(welcome_lines), reply_markup=keyboard)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None:
        return
    await update.effective_message.reply_text(HELP_TEXT)


async def new_report_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_user is None:
        return

    dialogue: DialogueManager = _service(context, "dialogue")
    await _apply(update, context, dialogue.start(update.effective_user.id))


async def new_report_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.callback_query is None:
        return

    await update.callback_query.answer()
    await new_report_command(update, context)


async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_user is None:
        return

    dialogue: DialogueManager = _service(context, "dialogue")
    await _apply(update, context, dialogue.cancel(update.effective_user.id))


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    dialogue: DialogueManager = _service(context, "dialogue")
    progress = dialogue.progress(update.effective_user.id)
    if progress is None:
        await update.effective_message.reply_text("Активного отчёта нет. Напишите /new_report, чтобы начать.")
        return

    answered, total = progress
    await update.effective_message.reply_text(f"Заполнено полей: {answered}/{total}. Ответьте на текущий вопрос.")


async def my_reports_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    repository: ReportRepository = _service(context, "repository")
    builder: ReportBuilder = _service(context, "builder")

    reports = repository.all_for_user(update.effective_user.id)
    await update.effective_message.reply_text(
        builder.build_history(reports, limit=MY_REPORTS_LIMIT),
        parse_mode=ParseMode.HTML,
    )


async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None:
        return

    repository: ReportRepository = _service(context, "repository")
    builder: ReportBuilder = _service(context, "builder")
    numeric_keys: list[str] = _service(context, "numeric_keys")

    await update.effective_message.reply_text(
        builder.build_stats(repository.aggregate(numeric_keys)),
        parse_mode=ParseMode.HTML,
    )


async def summary_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None:
        return

    repository: ReportRepository = _service(context, "repository")
    builder: ReportBuilder = _service(context, "builder")
    numeric_keys: list[str] = _service(context, "numeric_keys")

    today = utc_now().date()
    reports = repository.created_on(today)
    await update.effective_message.reply_text(
        builder.build_daily_summary(today, reports, repository.aggregate(numeric_keys, reports)),
        parse_mode=ParseMode.HTML,
    )


async def excel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    repository: ReportRepository = _service(context, "repository")
    exporter: SpreadsheetExporter = _service(context, "exporter")

    reports = repository.all_for_user(update.effective_user.id)
    if not reports:
        await update.effective_message.reply_text("У вас пока нет отчётов для выгрузки.")
        return

    await update.effective_message.reply_text("📊 Генерация Excel файла...")
    try:
        path = await asyncio.to_thread(exporter.generate_summary, reports, "Мои отчёты")
    except ExportError as exc:
        logger.exception("Summary export for user %s failed: %s", update.effective_user.id, exc)
        await update.effective_message.reply_text("⚠️ Не удалось сгенерировать Excel файл")
        return

    try:
        with path.open("rb") as f:
            await update.effective_message.reply_document(
                document=f,
                filename=path.name,
                caption=f"📊 Ваши отчёты: {len(reports)} шт.",
            )
    finally:
        path.unlink(missing_ok=True)


async def text_message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    text = (update.effective_message.text or "").strip()
    if not text:
        return

    dialogue: DialogueManager = _service(context, "dialogue")
    event = InboundEvent(
        user_id=update.effective_user.id,
        kind="text",
        payload=text,
        author=_author(update.effective_user),
    )

    await _apply(update, context, dialogue.handle(event))


async def answer_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if query is None or update.effective_user is None:
        return

    await query.answer()

    payload = (query.data or "").removeprefix(ANSWER_CALLBACK_PREFIX)
    dialogue: DialogueManager = _service(context, "dialogue")
    event = InboundEvent(
        user_id=update.effective_user.id,
        kind="selection",
        payload=payload,
        author=_author(update.effective_user),
    )
    transition = dialogue.handle(event)

    # Buttons of a question that is no longer current are removed.
    if transition.state != payload.partition(":")[0]:
        try:
            await query.edit_message_reply_markup(reply_markup=None)
        except TelegramError as exc:
            logger.debug("Could not clear inline keyboard: %s", exc)

    await _apply(update, context, transition)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Unhandled error while processing update %s", update, exc_info=context.error)
    if isinstance(update, Update) and update.effective_message is not None:
        try:
            await update.effective_message.reply_text("Произошла ошибка при обработке сообщения. Попробуйте ещё раз.")
        except TelegramError:
            logger.exception("Failed to report error to user")
