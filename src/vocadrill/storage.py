"""Progress store: per (student, item) memory states and per-student difficulty.

Absence of a record means the item was never reviewed. Concurrent writes for
the same item keep whichever record has the later ``last_reviewed``, so a
stale state from another device never replaces a fresher one.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Tuple

from pydantic import ValidationError
from redis import Redis

from .config import settings
from .errors import InvalidState
from .models import MemoryState

logger = logging.getLogger(__name__)


def is_newer(incoming: MemoryState, existing: Optional[MemoryState]) -> bool:
    """True when ``incoming`` should replace ``existing`` (last-write-wins on recency)."""
    if existing is None or existing.last_reviewed is None:
        return True
    if incoming.last_reviewed is None:
        return False
    return incoming.last_reviewed >= existing.last_reviewed


class ProgressStore(ABC):
    """Abstract repository for memory state access."""

    @abstractmethod
    def load_state(self, student_id: str, item_id: str) -> Optional[MemoryState]:
        """Stored state, or None if the item was never reviewed.

        Raises:
            InvalidState: The stored record cannot be parsed.
        """

    @abstractmethod
    def save_state(self, student_id: str, item_id: str, state: MemoryState) -> bool:
        """Persist ``state``. Returns False when a fresher record was kept instead."""

    @abstractmethod
    def load_difficulty(self, student_id: str) -> Optional[float]:
        pass

    @abstractmethod
    def save_difficulty(self, student_id: str, value: float) -> None:
        pass

    def load_states(
        self, student_id: str, item_ids: Iterable[str]
    ) -> Dict[str, MemoryState]:
        """Bulk lookup. Unreadable records are logged and left out."""
        states = {}
        for item_id in item_ids:
            try:
                state = self.load_state(student_id, item_id)
            except InvalidState as e:
                logger.warning(f"Dropping unreadable state for {student_id}/{item_id}: {e}")
                continue
            if state is not None:
                states[item_id] = state
        return states


class InMemoryProgressStore(ProgressStore):
    def __init__(self):
        self._states: Dict[Tuple[str, str], MemoryState] = {}
        self._difficulty: Dict[str, float] = {}
        self._lock = threading.Lock()

    def load_state(self, student_id, item_id):
        with self._lock:
            state = self._states.get((student_id, item_id))
        return state.model_copy() if state else None

    def save_state(self, student_id, item_id, state):
        with self._lock:
            existing = self._states.get((student_id, item_id))
            if not is_newer(state, existing):
                logger.info(f"Kept fresher state for {student_id}/{item_id}")
                return False
            self._states[(student_id, item_id)] = state.model_copy()
            return True

    def load_difficulty(self, student_id):
        with self._lock:
            return self._difficulty.get(student_id)

    def save_difficulty(self, student_id, value):
        with self._lock:
            self._difficulty[student_id] = value


class RedisProgressStore(ProgressStore):
    """Memory states as JSON strings under ``{prefix}:{student}:{item}``."""

    def __init__(self, client: Redis, prefix: str = settings.PROGRESS_KEY_PREFIX):
        self.client = client
        self.prefix = prefix

    def _key(self, student_id: str, item_id: str) -> str:
        return f"{self.prefix}:{student_id}:{item_id}"

    def _difficulty_key(self, student_id: str) -> str:
        return f"{self.prefix}-difficulty:{student_id}"

    @staticmethod
    def _parse(raw: str, item_id: str) -> MemoryState:
        try:
            return MemoryState.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidState(f"Unreadable memory state: {e}", item_id) from e

    def load_state(self, student_id, item_id):
        raw = self.client.get(self._key(student_id, item_id))
        if not raw:
            return None
        return self._parse(raw, item_id)

    def load_states(self, student_id, item_ids):
        item_ids = list(item_ids)
        if not item_ids:
            return {}
        raws = self.client.mget([self._key(student_id, i) for i in item_ids])
        states = {}
        for item_id, raw in zip(item_ids, raws):
            if not raw:
                continue
            try:
                states[item_id] = self._parse(raw, item_id)
            except InvalidState as e:
                logger.warning(f"Dropping unreadable state for {student_id}/{item_id}: {e}")
        return states

    def save_state(self, student_id, item_id, state):
        key = self._key(student_id, item_id)
        payload = state.model_dump_json()

        def write(pipe) -> bool:
            raw = pipe.get(key)
            existing = None
            if raw:
                try:
                    existing = self._parse(raw, item_id)
                except InvalidState:
                    logger.warning(f"Overwriting unreadable state at {key}")
            if not is_newer(state, existing):
                logger.info(f"Kept fresher state at {key}")
                return False
            pipe.multi()
            pipe.set(key, payload)
            return True

        return self.client.transaction(write, key, value_from_callable=True)

    def load_difficulty(self, student_id):
        raw = self.client.get(self._difficulty_key(student_id))
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Ignoring unreadable difficulty for {student_id}: {raw!r}")
            return None

    def save_difficulty(self, student_id, value):
        self.client.set(self._difficulty_key(student_id), repr(float(value)))
