"""
Shared pytest fixtures for the Recicla Coleta test suite.

- Stores: an in-memory store and a SQLite-file SQL store per test
- Services: Ledger / RewardsEngine / TrackingService wired to those stores,
  with a deterministic clock so timestamps are predictable
- API: a FastAPI TestClient whose service dependencies point at the
  per-test SQL store, plus signed bearer tokens
"""
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, Iterator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.engine import Engine

from config import JWT_ALGORITHM, JWT_SECRET
from database import create_db_engine, create_session_factory, init_db
from schemas.ledger import LedgerRecord
from services.ledger_service import Ledger
from services.record_store import MemoryRecordStore, SqlRecordStore
from services.rewards_service import RewardsEngine
from services.tracking_service import TrackingService

TEST_DIFFICULTY = 2


class StepClock:
    """Clock that advances one second per call."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 8, 0, 0)) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


def make_payload(**overrides) -> Dict:
    payload = {
        "collection_id": "col-1",
        "event_id": "evt-1",
        "stage": "collected",
        "weight": 2.5,
        "location": "Ecoponto Centro",
        "responsible_person": "Maria Coletora",
        "photo_hash": None,
    }
    payload.update(overrides)
    return payload


class TamperableMemoryStore(MemoryRecordStore):
    """In-memory store that can overwrite a stored record, to simulate tampering."""

    def replace(self, index: int, record: LedgerRecord) -> None:
        with self._lock:
            old = self._records[index]
            self._by_hash.pop(old.hash, None)
            self._records[index] = record
            self._by_hash[record.hash] = record


# ============================================================================
# STORES
# ============================================================================


@pytest.fixture
def memory_store() -> TamperableMemoryStore:
    return TamperableMemoryStore()


@pytest.fixture
def sql_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'recicla_test.db'}", echo=False)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine: Engine):
    return create_session_factory(sql_engine)


@pytest.fixture
def sql_store(session_factory) -> SqlRecordStore:
    return SqlRecordStore(session_factory)


# ============================================================================
# SERVICES
# ============================================================================


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def ledger(memory_store: MemoryRecordStore, clock: StepClock) -> Ledger:
    return Ledger(memory_store, difficulty=TEST_DIFFICULTY, max_nonce=1_000_000, clock=clock)


@pytest.fixture
def sql_ledger(sql_store: SqlRecordStore, clock: StepClock) -> Ledger:
    return Ledger(sql_store, difficulty=TEST_DIFFICULTY, max_nonce=1_000_000, clock=clock)


@pytest.fixture
def rewards(memory_store: MemoryRecordStore) -> RewardsEngine:
    return RewardsEngine(memory_store)


@pytest.fixture
def sql_rewards(sql_store: SqlRecordStore) -> RewardsEngine:
    return RewardsEngine(sql_store)


@pytest.fixture
def tracking(ledger: Ledger, rewards: RewardsEngine) -> TrackingService:
    return TrackingService(ledger, rewards, attempts=3, backoff=0, sleep=lambda _: None)


# ============================================================================
# API
# ============================================================================


def make_token(subject: str = "collector-1", role: str = "collector", name: str = "Maria Coletora") -> str:
    return jwt.encode({"sub": subject, "role": role, "name": name}, JWT_SECRET, algorithm=JWT_ALGORITHM)


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(subject='admin-1', role='admin', name='Admin')}"}


@pytest.fixture
def api_services(sql_store: SqlRecordStore, clock: StepClock):
    return (
        Ledger(sql_store, difficulty=TEST_DIFFICULTY, max_nonce=1_000_000, clock=clock),
        RewardsEngine(sql_store),
    )


@pytest.fixture
def client(api_services) -> Iterator[TestClient]:
    from dependencies import get_ledger, get_rewards
    from main import app

    api_ledger, api_rewards = api_services
    app.dependency_overrides[get_ledger] = lambda: api_ledger
    app.dependency_overrides[get_rewards] = lambda: api_rewards
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def payload_factory() -> Callable[..., Dict]:
    return make_payload
