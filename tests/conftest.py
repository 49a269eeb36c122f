"""
Shared Test Fixtures

Engine components are wired with an in-memory progress store, a fixed clock
and a dict-backed Redis double so tests run without external services.
"""

from datetime import datetime
from typing import List

import pytest

from vocadrill.config import PersistenceConfig
from vocadrill.memory import MemoryModel
from vocadrill.models import PracticeItem
from vocadrill.persistence import ProgressWriter
from vocadrill.session import SessionOrchestrator
from vocadrill.storage import InMemoryProgressStore
from vocadrill.vocabulary import VocabularyManager

from .helpers import NOW, UNIT_CSV, FakeClock, FakeRedis


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_model() -> MemoryModel:
    return MemoryModel()


@pytest.fixture
def catalog(tmp_path) -> VocabularyManager:
    (tmp_path / "everyday.csv").write_text(UNIT_CSV, encoding="utf-8")
    manager = VocabularyManager(str(tmp_path))
    manager.load_all()
    return manager


@pytest.fixture
def pool(catalog) -> List[PracticeItem]:
    return catalog.fetch_pool("everyday")


@pytest.fixture
def store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def fast_retry() -> PersistenceConfig:
    return PersistenceConfig(max_workers=2, retry_attempts=2, retry_min_wait=0, retry_max_wait=0)


@pytest.fixture
def writer(store, fast_retry):
    writer = ProgressWriter(store, fast_retry)
    yield writer
    writer.shutdown()


@pytest.fixture
def orchestrator(catalog, store, writer, clock) -> SessionOrchestrator:
    return SessionOrchestrator(catalog, store, writer, clock=clock)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
