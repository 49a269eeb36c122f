import logging
import threading
from collections import OrderedDict
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from typing import List, Optional, Set

from tenacity import Retrying, stop_after_attempt, wait_exponential

from .config import PersistenceConfig, settings
from .errors import PersistenceFailure
from .models import MemoryState
from .storage import ProgressStore

logger = logging.getLogger(__name__)


class ProgressWriter:
    """
    Fire-and-forget persistence of memory states.

    Writes run on a worker pool so the session never waits on storage. Each
    write is retried with exponential backoff; a write that still fails is
    recorded as a PersistenceFailure against the session that produced it.
    """

    def __init__(
        self,
        store: ProgressStore,
        config: Optional[PersistenceConfig] = None,
        executor: Optional[Executor] = None,
    ):
        self.store = store
        self.config = config or settings.PERSISTENCE
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="progress-writer"
        )
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()
        self._failures: "OrderedDict[str, List[PersistenceFailure]]" = OrderedDict()

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.config.retry_attempts),
            wait=wait_exponential(
                multiplier=self.config.retry_min_wait,
                min=self.config.retry_min_wait,
                max=self.config.retry_max_wait,
            ),
            reraise=True,
        )

    def _record(self, session_id: Optional[str], failure: PersistenceFailure) -> None:
        if session_id is None:
            return
        with self._lock:
            self._failures.setdefault(session_id, []).append(failure)
            self._failures.move_to_end(session_id)
            while len(self._failures) > self.config.max_tracked_sessions:
                self._failures.popitem(last=False)

    def _write(
        self, session_id: str, student_id: str, item_id: str, state: MemoryState
    ) -> bool:
        try:
            return self._retrying()(self.store.save_state, student_id, item_id, state)
        except Exception as e:
            failure = PersistenceFailure(student_id, item_id, e)
            logger.error(f"Session {session_id}: {failure}")
            self._record(session_id, failure)
            raise failure from e

    def _write_difficulty(
        self, session_id: Optional[str], student_id: str, value: float
    ) -> None:
        try:
            self._retrying()(self.store.save_difficulty, student_id, value)
        except Exception as e:
            failure = PersistenceFailure(student_id, None, e)
            logger.error(f"Session {session_id}: {failure}")
            self._record(session_id, failure)
            raise failure from e

    def _track(self, future: Future) -> Future:
        with self._lock:
            self._pending.add(future)

        def on_done(done: Future):
            with self._lock:
                self._pending.discard(done)

        future.add_done_callback(on_done)
        return future

    def save(
        self, session_id: str, student_id: str, item_id: str, state: MemoryState
    ) -> Future:
        return self._track(
            self._executor.submit(self._write, session_id, student_id, item_id, state)
        )

    def save_difficulty(
        self, student_id: str, value: float, session_id: Optional[str] = None
    ) -> Future:
        return self._track(
            self._executor.submit(self._write_difficulty, session_id, student_id, value)
        )

    def failures(self, session_id: str) -> List[PersistenceFailure]:
        with self._lock:
            return list(self._failures.get(session_id, []))

    def forget(self, session_id: str) -> None:
        with self._lock:
            self._failures.pop(session_id, None)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Waits for pending writes. Returns True when none are left running."""
        with self._lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
