"""
Tests for background progress writes with retry.
"""

from unittest.mock import MagicMock

import pytest

from vocadrill.config import PersistenceConfig
from vocadrill.errors import PersistenceFailure
from vocadrill.persistence import ProgressWriter
from vocadrill.storage import InMemoryProgressStore

from .helpers import reviewed_state

STUDENT = "student-1"


@pytest.fixture
def flaky_store():
    store = InMemoryProgressStore()
    store.save_state = MagicMock(side_effect=[ConnectionError("timeout"), True])
    return store


class TestProgressWriter:
    def test_writes_land_after_flush(self, writer, store):
        for i in range(1, 6):
            writer.save("s-1", STUDENT, f"w{i:02d}", reviewed_state(days_ago=i))

        assert writer.flush(timeout=5)
        assert len(store.load_states(STUDENT, [f"w{i:02d}" for i in range(1, 6)])) == 5
        assert writer.failures("s-1") == []

    def test_transient_error_is_retried(self, flaky_store, fast_retry):
        writer = ProgressWriter(flaky_store, fast_retry)
        try:
            future = writer.save("s-1", STUDENT, "w01", reviewed_state())
            assert future.result(timeout=5) is True
        finally:
            writer.shutdown()

        assert flaky_store.save_state.call_count == 2
        assert writer.failures("s-1") == []

    def test_exhausted_retries_are_recorded(self, store, fast_retry):
        store.save_state = MagicMock(side_effect=ConnectionError("store offline"))
        writer = ProgressWriter(store, fast_retry)
        try:
            future = writer.save("s-1", STUDENT, "w01", reviewed_state())
            with pytest.raises(PersistenceFailure):
                future.result(timeout=5)
        finally:
            writer.shutdown()

        failures = writer.failures("s-1")
        assert len(failures) == 1
        assert failures[0].item_id == "w01"
        assert isinstance(failures[0].cause, ConnectionError)
        assert writer.failures("another-session") == []

        writer.forget("s-1")
        assert writer.failures("s-1") == []

    def test_difficulty_is_saved(self, writer, store):
        writer.save_difficulty(STUDENT, 0.8)
        assert writer.flush(timeout=5)
        assert store.load_difficulty(STUDENT) == 0.8

    def test_flush_with_nothing_pending(self, writer):
        assert writer.flush(timeout=0.1)

    def test_failed_difficulty_write_is_recorded(self, store, fast_retry):
        store.save_difficulty = MagicMock(side_effect=ConnectionError("store offline"))
        writer = ProgressWriter(store, fast_retry)
        try:
            future = writer.save_difficulty(STUDENT, 0.8, session_id="s-1")
            with pytest.raises(PersistenceFailure):
                future.result(timeout=5)
        finally:
            writer.shutdown()

        failures = writer.failures("s-1")
        assert len(failures) == 1
        assert failures[0].item_id is None
        assert "adaptive difficulty" in str(failures[0])

    def test_failure_records_are_capped(self, store):
        config = PersistenceConfig(
            max_workers=1,
            retry_attempts=1,
            retry_min_wait=0,
            retry_max_wait=0,
            max_tracked_sessions=2,
        )
        store.save_state = MagicMock(side_effect=ConnectionError("store offline"))
        writer = ProgressWriter(store, config)
        try:
            for session_id in ("s-1", "s-2", "s-3"):
                writer.save(session_id, STUDENT, "w01", reviewed_state())
                writer.flush(timeout=5)
        finally:
            writer.shutdown()

        assert writer.failures("s-1") == []
        assert len(writer.failures("s-2")) == 1
        assert len(writer.failures("s-3")) == 1
