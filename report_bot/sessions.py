from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .models import Session
from .schema import FieldSchema

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionNotFound(KeyError):
    pass


class SessionStore:
    """In-progress report sessions keyed by Telegram user id.

    Operations never suspend, so under the bot's event loop each call is
    atomic with respect to other updates.
    """

    def __init__(
        self,
        schema: FieldSchema,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.schema = schema
        self.ttl = ttl
        self.clock = clock
        self._sessions: dict[int, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _expired(self, session: Session, now: datetime) -> bool:
        return self.ttl is not None and now - session.updated_at > self.ttl

    def begin(self, user_id: int) -> Session:
        self.purge_expired()
        now = self.clock()
        session = Session(
            user_id=user_id,
            current_key=self.schema.first_key,
            started_at=now,
            updated_at=now,
        )
        replaced = self._sessions.get(user_id)
        if replaced is not None:
            logger.info("Replacing open session for user %s at field %s", user_id, replaced.current_key)
        self._sessions[user_id] = session
        return session

    def get(self, user_id: int) -> Session | None:
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if self._expired(session, self.clock()):
            logger.info("Session for user %s expired at field %s", user_id, session.current_key)
            del self._sessions[user_id]
            return None
        return session

    def advance(self, user_id: int, value: Any) -> str | None:
        """Record ``value`` for the current field; return the next key or ``None`` when complete."""
        session = self.get(user_id)
        if session is None:
            raise SessionNotFound(user_id)

        key = session.current_key
        session.values[key] = value
        session.updated_at = self.clock()

        next_key = self.schema.next_key(key, value)
        if next_key is not None:
            session.current_key = next_key
        return next_key

    def cancel(self, user_id: int) -> Session | None:
        return self._sessions.pop(user_id, None)

    def purge_expired(self) -> int:
        if self.ttl is None:
            return 0
        now = self.clock()
        expired = [uid for uid, session in self._sessions.items() if self._expired(session, now)]
        for uid in expired:
            del self._sessions[uid]
        if expired:
            logger.info("Purged %s expired sessions", len(expired))
        return len(expired)
