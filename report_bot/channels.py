from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Sequence

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import TelegramError

from .dialogue import answer_callback_data
from .models import ChoiceOption

logger = logging.getLogger(__name__)


class ChannelError(RuntimeError):
    pass


class Messenger(Protocol):
    async def send_text(self, chat_id: int | str, text: str) -> None: ...

    async def send_document(self, chat_id: int | str, path: Path, caption: str) -> None: ...


def options_keyboard(field_key: str, options: Sequence[ChoiceOption]) -> InlineKeyboardMarkup | None:
    if not options:
        return None
    buttons = [
        InlineKeyboardButton(option.label, callback_data=answer_callback_data(field_key, option.value))
        for option in options
    ]
    return InlineKeyboardMarkup([buttons])


class TelegramMessenger:
    """Sends HTML messages and files through the bot; errors surface as ``ChannelError``."""

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def send_text(self, chat_id: int | str, text: str) -> None:
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        except TelegramError as exc:
            raise ChannelError(f"send_message to {chat_id} failed: {exc}") from exc

    async def send_document(self, chat_id: int | str, path: Path, caption: str) -> None:
        try:
            with path.open("rb") as f:
                await self.bot.send_document(chat_id=chat_id, document=f, filename=path.name, caption=caption)
        except (TelegramError, OSError) as exc:
            raise ChannelError(f"send_document to {chat_id} failed: {exc}") from exc
