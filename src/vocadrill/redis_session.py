from datetime import timedelta
from typing import Optional

import redis
from pydantic import ValidationError

from .config import settings
from .models import SessionHandle

redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

SESSION_KEY_PREFIX = "session"


class SessionStore:
    """Session handles stored as JSON with the session timeout as TTL."""

    def __init__(self, client: redis.Redis, timeout_minutes: int = settings.SESSION_TIMEOUT_MINUTES):
        self.client = client
        self.timeout = timedelta(minutes=timeout_minutes)

    def _key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}:{session_id}"

    def get(self, session_id: str) -> Optional[SessionHandle]:
        raw = self.client.get(self._key(session_id))
        if not raw:
            return None
        try:
            return SessionHandle.model_validate_json(raw)
        except ValidationError:
            self.client.delete(self._key(session_id))
            return None

    def save(self, handle: SessionHandle) -> None:
        self.client.set(
            self._key(handle.session_id), handle.model_dump_json(), ex=self.timeout
        )

    def delete(self, session_id: str) -> None:
        self.client.delete(self._key(session_id))
