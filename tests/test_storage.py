"""
Tests for progress and session storage.
"""

from datetime import timedelta

import pytest

from vocadrill.errors import InvalidState
from vocadrill.models import SessionHandle
from vocadrill.redis_session import SessionStore
from vocadrill.storage import InMemoryProgressStore, RedisProgressStore, is_newer

from .helpers import reviewed_state

STUDENT = "student-1"


class TestIsNewer:
    def test_later_review_wins(self):
        old = reviewed_state(days_ago=5)
        new = reviewed_state(days_ago=1)
        assert is_newer(new, old)
        assert not is_newer(old, new)

    def test_equal_timestamps_accept_incoming(self):
        state = reviewed_state()
        assert is_newer(state, state.model_copy())

    def test_anything_beats_missing_record(self):
        assert is_newer(reviewed_state(), None)


class TestInMemoryProgressStore:
    def test_round_trip(self):
        store = InMemoryProgressStore()
        state = reviewed_state()
        assert store.save_state(STUDENT, "w01", state)
        assert store.load_state(STUDENT, "w01") == state
        assert store.load_state("someone-else", "w01") is None

    def test_stale_write_is_rejected(self):
        store = InMemoryProgressStore()
        fresh = reviewed_state(stability=9.0, days_ago=1)
        stale = reviewed_state(stability=2.0, days_ago=3)

        store.save_state(STUDENT, "w01", fresh)
        assert not store.save_state(STUDENT, "w01", stale)
        assert store.load_state(STUDENT, "w01").stability == 9.0

    def test_load_states_skips_missing(self):
        store = InMemoryProgressStore()
        store.save_state(STUDENT, "w02", reviewed_state())
        assert set(store.load_states(STUDENT, ["w01", "w02", "w03"])) == {"w02"}

    def test_difficulty(self):
        store = InMemoryProgressStore()
        assert store.load_difficulty(STUDENT) is None
        store.save_difficulty(STUDENT, 0.73)
        assert store.load_difficulty(STUDENT) == 0.73


class TestRedisProgressStore:
    @pytest.fixture
    def store(self, fake_redis) -> RedisProgressStore:
        return RedisProgressStore(fake_redis, prefix="progress")

    def test_round_trip_preserves_timestamps(self, store, fake_redis):
        state = reviewed_state(stability=4.25)
        assert store.save_state(STUDENT, "w01", state)

        assert "progress:student-1:w01" in fake_redis.data
        loaded = store.load_state(STUDENT, "w01")
        assert loaded == state
        assert loaded.last_reviewed.tzinfo is not None

    def test_stale_write_is_rejected(self, store):
        store.save_state(STUDENT, "w01", reviewed_state(stability=9.0, days_ago=1))
        assert not store.save_state(STUDENT, "w01", reviewed_state(days_ago=2))
        assert store.load_state(STUDENT, "w01").stability == 9.0

    def test_corrupt_record_raises(self, store, fake_redis):
        fake_redis.set("progress:student-1:w01", "{not json")
        with pytest.raises(InvalidState) as excinfo:
            store.load_state(STUDENT, "w01")
        assert excinfo.value.item_id == "w01"

    def test_load_states_omits_corrupt_records(self, store, fake_redis):
        store.save_state(STUDENT, "w02", reviewed_state())
        fake_redis.set("progress:student-1:w01", '{"stability": "lots"}')

        states = store.load_states(STUDENT, ["w01", "w02", "w03"])
        assert list(states) == ["w02"]

    def test_corrupt_record_is_overwritten(self, store, fake_redis):
        fake_redis.set("progress:student-1:w01", "garbage")
        assert store.save_state(STUDENT, "w01", reviewed_state())
        assert store.load_state(STUDENT, "w01") is not None

    def test_difficulty(self, store, fake_redis):
        assert store.load_difficulty(STUDENT) is None
        store.save_difficulty(STUDENT, 0.61)
        assert store.load_difficulty(STUDENT) == pytest.approx(0.61)

        fake_redis.set("progress-difficulty:student-1", "high")
        assert store.load_difficulty(STUDENT) is None


class TestSessionStore:
    @pytest.fixture
    def handle(self, orchestrator) -> SessionHandle:
        return orchestrator.generate_session(STUDENT, "everyday", size=3, session_id="s-1")

    def test_round_trip(self, fake_redis, handle):
        sessions = SessionStore(fake_redis, timeout_minutes=30)
        sessions.save(handle)

        assert sessions.get("s-1") == handle
        assert fake_redis.expiry["session:s-1"] == timedelta(minutes=30)

    def test_unknown_session(self, fake_redis):
        assert SessionStore(fake_redis).get("missing") is None

    def test_corrupt_session_is_dropped(self, fake_redis):
        fake_redis.set("session:s-1", '{"session_id": "s-1"}')
        sessions = SessionStore(fake_redis)

        assert sessions.get("s-1") is None
        assert "session:s-1" not in fake_redis.data

    def test_delete(self, fake_redis, handle):
        sessions = SessionStore(fake_redis)
        sessions.save(handle)
        sessions.delete("s-1")
        assert sessions.get("s-1") is None
