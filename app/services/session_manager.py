from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from app.logging_config import get_logger

logger = get_logger("session_manager")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    start_time: datetime
    last_activity: datetime


class SessionManager:
    """In-memory activity clock per conversation.

    Expiry is a sliding window: a session goes cold once ``session_timeout_ms``
    have passed since the last activity, not since it started.
    """

    def __init__(self, session_timeout_ms: int, clock: Callable[[], datetime] = _utcnow):
        self.session_timeout_ms = session_timeout_ms
        self._clock = clock
        self._sessions: Dict[str, Session] = {}

    @staticmethod
    def _elapsed_ms(later: datetime, earlier: datetime) -> int:
        return max(0, int((later - earlier).total_seconds() * 1000))

    def get_session_start_time(self, conversation_id: str) -> Optional[datetime]:
        session = self._sessions.get(conversation_id)
        return session.start_time if session else None

    def get_last_activity_time(self, conversation_id: str) -> Optional[datetime]:
        session = self._sessions.get(conversation_id)
        return session.last_activity if session else None

    def is_session_expired(self, conversation_id: str) -> bool:
        """Return True if the session went idle for the timeout. Unknown ids are not expired."""
        session = self._sessions.get(conversation_id)
        if session is None:
            return False

        now = self._clock()
        idle_ms = self._elapsed_ms(now, session.last_activity)
        expired = idle_ms >= self.session_timeout_ms

        if expired:
            logger.info(
                "session.expired",
                extra={
                    "context": {
                        "conversation_id": conversation_id,
                        "session_age_ms": self._elapsed_ms(now, session.start_time),
                        "idle_ms": idle_ms,
                        "session_timeout_ms": self.session_timeout_ms,
                    }
                },
            )
        return expired

    def update_activity(self, conversation_id: str) -> None:
        now = self._clock()
        session = self._sessions.get(conversation_id)
        if session is not None:
            # Clock skew must not break last_activity >= start_time.
            session.last_activity = max(now, session.start_time)
            return

        self._sessions[conversation_id] = Session(start_time=now, last_activity=now)
        logger.debug("session.created", extra={"context": {"conversation_id": conversation_id}})

    def reset_session(self, conversation_id: str) -> None:
        session = self._sessions.pop(conversation_id, None)
        if session is not None:
            logger.info(
                "session.reset",
                extra={
                    "context": {
                        "conversation_id": conversation_id,
                        "session_age_ms": self._elapsed_ms(self._clock(), session.start_time),
                    }
                },
            )

    def get_session_age_ms(self, conversation_id: str) -> Optional[int]:
        session = self._sessions.get(conversation_id)
        if session is None:
            return None
        return self._elapsed_ms(self._clock(), session.start_time)

    def get_time_until_expiration_ms(self, conversation_id: str) -> Optional[int]:
        session = self._sessions.get(conversation_id)
        if session is None:
            return None
        idle_ms = self._elapsed_ms(self._clock(), session.last_activity)
        return max(0, self.session_timeout_ms - idle_ms)
