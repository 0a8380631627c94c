from __future__ import annotations

import html
import logging
from datetime import datetime
from typing import Callable

from .constants import ANSWER_CALLBACK_PREFIX, CANCEL_TOKENS
from .models import InboundEvent, Reply, Report, Session, Submit, Transition
from .schema import FieldSchema, ValidationError
from .sessions import SessionStore, utc_now

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_COMPLETED = "completed"

IDLE_HINT = "Активного отчёта нет. Нажмите /new_report, чтобы начать новый отчёт."
STALE_SELECTION = "Эта кнопка относится к другому вопросу. Ответьте, пожалуйста, на текущий."


def answer_callback_data(field_key: str, value: object) -> str:
    return f"{ANSWER_CALLBACK_PREFIX}{field_key}:{value}"


class DialogueManager:
    """Drives one user's session through the field schema.

    Every call consumes one event and returns a :class:`Transition`; the
    effects it carries are executed by the Telegram handlers.
    """

    def __init__(
        self,
        schema: FieldSchema,
        sessions: SessionStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.schema = schema
        self.sessions = sessions
        self.clock = clock

    @staticmethod
    def is_cancel(text: str) -> bool:
        return " ".join(text.split()).lower() in CANCEL_TOKENS

    def prompt(self, key: str) -> Reply:
        spec = self.schema.get(key)
        text = f"<b>{self.schema.position(key)}/{len(self.schema)}.</b> {html.escape(spec.prompt)}"
        return Reply(text=text, options=spec.options, field_key=key)

    def progress(self, user_id: int) -> tuple[int, int] | None:
        session = self.sessions.get(user_id)
        if session is None:
            return None
        return len(session.values), len(self.schema)

    def start(self, user_id: int) -> Transition:
        replaced = self.sessions.get(user_id) is not None
        session = self.sessions.begin(user_id)

        effects = []
        if replaced:
            effects.append(Reply("Предыдущий незавершённый отчёт сброшен."))
        effects.append(
            Reply(
                "📝 <b>Новый отчёт</b>\n"
                "Отвечайте на вопросы по очереди. Для отмены отправьте /cancel."
            )
        )
        effects.append(self.prompt(session.current_key))
        return Transition(state=session.current_key, effects=effects)

    def cancel(self, user_id: int) -> Transition:
        session = self.sessions.cancel(user_id)
        if session is None:
            return Transition(state=STATE_IDLE, effects=[Reply("Активного отчёта нет.")])
        logger.info("User %s cancelled report at field %s", user_id, session.current_key)
        return Transition(
            state=STATE_IDLE,
            effects=[Reply("❌ Заполнение отчёта отменено. Данные не сохранены.")],
        )

    def _raw_input(self, event: InboundEvent, session: Session) -> str | None:
        if event.kind == "text":
            return event.payload

        field_key, sep, value = event.payload.partition(":")
        if not sep or field_key != session.current_key:
            return None
        return value

    def handle(self, event: InboundEvent) -> Transition:
        session = self.sessions.get(event.user_id)
        if session is None:
            return Transition(state=STATE_IDLE, effects=[Reply(IDLE_HINT)])

        if event.kind == "text" and self.is_cancel(event.payload):
            return self.cancel(event.user_id)

        key = session.current_key
        raw = self._raw_input(event, session)
        if raw is None:
            return Transition(state=key, effects=[Reply(STALE_SELECTION), self.prompt(key)])

        try:
            value = self.schema.validate(key, raw)
        except ValidationError as exc:
            return Transition(
                state=key,
                effects=[
                    Reply(f"⚠️ Неверный формат. Ожидается: {html.escape(exc.expected)}."),
                    self.prompt(key),
                ],
            )

        next_key = self.sessions.advance(event.user_id, value)
        if next_key is not None:
            return Transition(state=next_key, effects=[self.prompt(next_key)])

        return self._complete(event)

    def _complete(self, event: InboundEvent) -> Transition:
        session = self.sessions.cancel(event.user_id)
        if session is None:
            raise RuntimeError("Session disappeared")

        report = Report(
            user_id=event.user_id,
            values={key: session.values[key] for key in self.schema.keys if key in session.values},
            created_at=self.clock(),
            author=event.author,
        )
        logger.info("User %s completed report with %s fields", event.user_id, len(report.values))
        return Transition(
            state=STATE_COMPLETED,
            effects=[Submit(report)],
        )
