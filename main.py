from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta

import uvicorn
from fastapi import FastAPI
from telegram import BotCommand, BotCommandScopeAllPrivateChats, BotCommandScopeDefault
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters

from report_bot.api import create_api
from report_bot.channels import TelegramMessenger
from report_bot.config import EXPORTS_DIR, STORAGE_DIR, AppConfig, ConfigError, ensure_data_dirs, load_config
from report_bot.constants import ANSWER_CALLBACK_PREFIX, NEW_REPORT_CALLBACK
from report_bot.dialogue import DialogueManager
from report_bot.excel import SpreadsheetExporter
from report_bot.handlers import (
    answer_callback,
    cancel_command,
    error_handler,
    excel_command,
    help_command,
    my_reports_command,
    new_report_callback,
    new_report_command,
    start_command,
    stats_command,
    status_command,
    summary_command,
    text_message_handler,
)
from report_bot.mailer import EmailService
from report_bot.pipeline import DistributionPipeline
from report_bot.reporting import ReportBuilder
from report_bot.repository import JsonMirror, ReportRepository
from report_bot.schema import SchemaError, build_report_schema
from report_bot.sessions import SessionStore

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # httpx logs every Telegram long-poll request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def _post_init_set_commands(app: Application) -> None:
    commands = [
        BotCommand("start", "Запуск бота"),
        BotCommand("new_report", "Новый отчёт о работах"),
        BotCommand("cancel", "Отменить текущий отчёт"),
        BotCommand("status", "Прогресс заполнения"),
        BotCommand("my_reports", "Мои отчёты"),
        BotCommand("excel", "Мои отчёты в Excel"),
        BotCommand("stats", "Общая статистика"),
        BotCommand("summary", "Сводка за сегодня"),
        BotCommand("help", "Справка по командам"),
    ]

    scopes = [BotCommandScopeDefault(), BotCommandScopeAllPrivateChats()]
    for scope in scopes:
        await app.bot.set_my_commands(commands, scope=scope)

    logger.info("Telegram command menu updated for default/private scopes")


def build_application(config: AppConfig) -> Application:
    ensure_data_dirs()

    schema = build_report_schema(allow_zero=config.allow_zero_quantities)
    ttl = timedelta(minutes=config.session_ttl_minutes) if config.session_ttl_minutes else None
    sessions = SessionStore(schema, ttl=ttl)
    dialogue = DialogueManager(schema=schema, sessions=sessions)

    repository = ReportRepository(mirror=JsonMirror(STORAGE_DIR))
    if config.restore_reports:
        repository.restore()

    builder = ReportBuilder()
    exporter = SpreadsheetExporter(exports_dir=EXPORTS_DIR, schema=schema)
    mailer = EmailService(config.smtp, builder)

    app = Application.builder().token(config.telegram_bot_token).post_init(_post_init_set_commands).build()

    pipeline = DistributionPipeline(
        repository=repository,
        messenger=TelegramMessenger(app.bot),
        builder=builder,
        exporter=exporter,
        mailer=mailer,
        broadcast_chat_id=config.telegram_channel_id,
    )

    app.bot_data["dialogue"] = dialogue
    app.bot_data["repository"] = repository
    app.bot_data["builder"] = builder
    app.bot_data["exporter"] = exporter
    app.bot_data["pipeline"] = pipeline
    app.bot_data["numeric_keys"] = schema.numeric_keys()

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("new_report", new_report_command))
    app.add_handler(CommandHandler("cancel", cancel_command))
    app.add_handler(CommandHandler("status", status_command))
    app.add_handler(CommandHandler("my_reports", my_reports_command))
    app.add_handler(CommandHandler("excel", excel_command))
    app.add_handler(CommandHandler("stats", stats_command))
    app.add_handler(CommandHandler("summary", summary_command))

    app.add_handler(CallbackQueryHandler(new_report_callback, pattern=rf"^{NEW_REPORT_CALLBACK}$"))
    app.add_handler(CallbackQueryHandler(answer_callback, pattern=rf"^{ANSWER_CALLBACK_PREFIX}"))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, text_message_handler))
    app.add_error_handler(error_handler)

    return app


def build_api(app: Application) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        async with app:
            await _post_init_set_commands(app)
            await app.start()
            await app.updater.start_polling(drop_pending_updates=True)
            logger.info("Bot polling started inside the status API")
            yield
            await app.updater.stop()
            await app.stop()

    return create_api(
        repository=app.bot_data["repository"],
        exporter=app.bot_data["exporter"],
        numeric_keys=app.bot_data["numeric_keys"],
        bot_running=lambda: app.running,
        lifespan=lifespan,
    )


def main() -> None:
    configure_logging()

    try:
        config = load_config()
        app = build_application(config)
    except (ConfigError, SchemaError) as exc:
        logging.error("Startup failed: %s", exc)
        sys.exit(1)

    if config.api_enabled:
        logger.info("Status API on http://%s:%s", config.api_host, config.api_port)
        uvicorn.run(build_api(app), host=config.api_host, port=config.api_port)
        return

    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
