# services/record_store.py
"""
Record store - persistence boundary for the ledger and rewards services.

The services never touch sessions or tables directly; they go through the
narrow operations below:

- get / tail / append / scan / count: the hash chain. append is an atomic
  compare-and-append: it fails with ConcurrentModification when the tail has
  moved since the caller read it.
- atomic_increment / get_user_points / find_transaction: reward state. The
  increment, the level recomputation and the optional transaction row are
  written as one unit.

Two implementations:
- SqlRecordStore: SQLAlchemy, used by the API.
- MemoryRecordStore: process-local, lock-protected; used by tests and local runs.
"""
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from database import get_session_context
from models import BlockchainRecord, UserPoints, PointsTransaction
from schemas.ledger import LedgerPayload, LedgerRecord
from schemas.points import UserPointsState, PointsTransactionRecord
from services.digest import GENESIS_HASH
from services.errors import ConcurrentModification, StorageUnavailable

logger = logging.getLogger(__name__)

RecordPredicate = Callable[[LedgerRecord], bool]
LevelFunction = Callable[[int], str]


class RecordStore(ABC):
     """Operations the ledger and rewards services need from storage."""

     # -- hash chain ---------------------------------------------------------

     @abstractmethod
     def get(self, record_hash: str) -> Optional[LedgerRecord]:
          """Return the record with this hash, or None."""

     @abstractmethod
     def tail(self) -> Optional[LedgerRecord]:
          """Return the most recently appended record, or None for an empty chain."""

     @abstractmethod
     def append(self, record: LedgerRecord) -> LedgerRecord:
          """
          Append a record if record.previous_hash is still the tail's hash
          (GENESIS_HASH for an empty chain).

          Raises:
               ConcurrentModification: another writer appended first.
          """

     @abstractmethod
     def scan(
          self,
          predicate: Optional[RecordPredicate] = None,
          collection_id: Optional[str] = None,
     ) -> Iterator[LedgerRecord]:
          """Lazily iterate records in append order."""

     @abstractmethod
     def count(self) -> int:
          """Number of records in the chain."""

     def tail_hash(self) -> str:
          last = self.tail()
          return last.hash if last is not None else GENESIS_HASH

     # -- rewards ------------------------------------------------------------

     @abstractmethod
     def get_user_points(self, user_id: str) -> Optional[UserPointsState]:
          """Return a user's reward state, or None if they never earned points."""

     @abstractmethod
     def atomic_increment(
          self,
          user_id: str,
          delta: int,
          level_for: LevelFunction,
          transaction: Optional[PointsTransactionRecord] = None,
     ) -> UserPointsState:
          """
          Add delta to the user's total (creating the row at zero), store the
          level derived from the new total and record the transaction, all as
          one atomic unit.

          Raises:
               ConcurrentModification: the transaction's collection_id was
                    already credited.
          """

     @abstractmethod
     def find_transaction(self, collection_id: str) -> Optional[PointsTransactionRecord]:
          """Return the transaction credited for a collection, or None."""

     @abstractmethod
     def iter_user_points(self) -> Iterator[UserPointsState]:
          """Iterate every user's reward state."""

     @abstractmethod
     def iter_transactions(self, user_id: Optional[str] = None) -> Iterator[PointsTransactionRecord]:
          """Iterate transactions in creation order, optionally for one user."""


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

def _to_record(row: BlockchainRecord) -> LedgerRecord:
     return LedgerRecord(
          hash=row.hash,
          previous_hash=row.previous_hash,
          payload=LedgerPayload(
               collection_id=row.collection_id,
               event_id=row.event_id,
               stage=row.stage,
               weight=row.weight,
               location=row.location,
               responsible_person=row.responsible_person,
               photo_hash=row.photo_hash,
          ),
          timestamp=row.timestamp,
          nonce=row.nonce,
     )


def _to_row(record: LedgerRecord) -> BlockchainRecord:
     payload = record.payload
     return BlockchainRecord(
          hash=record.hash,
          previous_hash=record.previous_hash,
          collection_id=payload.collection_id,
          event_id=payload.event_id,
          stage=payload.stage,
          weight=payload.weight,
          location=payload.location,
          responsible_person=payload.responsible_person,
          photo_hash=payload.photo_hash,
          nonce=record.nonce,
          timestamp=record.timestamp,
     )


class SqlRecordStore(RecordStore):
     """Record store backed by the SQLAlchemy models."""

     def __init__(self, session_factory: sessionmaker) -> None:
          self._session_factory = session_factory

     @contextmanager
     def _session(self, operation: str) -> Iterator[Session]:
          try:
               with get_session_context(self._session_factory) as session:
                    yield session
          except IntegrityError:
               raise
          except (DBAPIError, SQLAlchemyError) as exc:
               logger.error("Record store operation %s failed", operation, exc_info=True)
               raise StorageUnavailable(f"{operation}: {exc.__class__.__name__}") from exc

     def get(self, record_hash: str) -> Optional[LedgerRecord]:
          with self._session("ledger.get") as session:
               row = session.execute(
                    select(BlockchainRecord).where(BlockchainRecord.hash == record_hash)
               ).scalar_one_or_none()
               return _to_record(row) if row is not None else None

     def tail(self) -> Optional[LedgerRecord]:
          with self._session("ledger.tail") as session:
               row = session.execute(
                    select(BlockchainRecord).order_by(BlockchainRecord.id.desc()).limit(1)
               ).scalar_one_or_none()
               return _to_record(row) if row is not None else None

     def append(self, record: LedgerRecord) -> LedgerRecord:
          try:
               with self._session("ledger.append") as session:
                    current = session.execute(
                         select(BlockchainRecord.hash).order_by(BlockchainRecord.id.desc()).limit(1)
                    ).scalar_one_or_none() or GENESIS_HASH
                    if current != record.previous_hash:
                         raise ConcurrentModification(
                              f"Chain tail moved: expected {record.previous_hash[:16]}, found {current[:16]}"
                         )
                    session.add(_to_row(record))
          except IntegrityError as exc:
               # Unique previous_hash: another writer claimed the same tail
               raise ConcurrentModification("Chain tail claimed by a concurrent append") from exc
          return record

     def scan(
          self,
          predicate: Optional[RecordPredicate] = None,
          collection_id: Optional[str] = None,
     ) -> Iterator[LedgerRecord]:
          query = select(BlockchainRecord).order_by(BlockchainRecord.id)
          if collection_id is not None:
               query = query.where(BlockchainRecord.collection_id == collection_id)
          with self._session("ledger.scan") as session:
               for row in session.execute(query.execution_options(yield_per=200)).scalars():
                    record = _to_record(row)
                    if predicate is None or predicate(record):
                         yield record

     def count(self) -> int:
          with self._session("ledger.count") as session:
               return session.execute(select(func.count(BlockchainRecord.id))).scalar_one()

     def get_user_points(self, user_id: str) -> Optional[UserPointsState]:
          with self._session("points.get") as session:
               row = session.get(UserPoints, user_id)
               return UserPointsState.model_validate(row) if row is not None else None

     def atomic_increment(
          self,
          user_id: str,
          delta: int,
          level_for: LevelFunction,
          transaction: Optional[PointsTransactionRecord] = None,
     ) -> UserPointsState:
          try:
               with self._session("points.increment") as session:
                    result = session.execute(
                         update(UserPoints)
                         .where(UserPoints.user_id == user_id)
                         .values(total_points=UserPoints.total_points + delta)
                    )
                    if result.rowcount == 0:
                         session.add(UserPoints(user_id=user_id, total_points=delta, level=level_for(delta)))
                         session.flush()
                    total = session.execute(
                         select(UserPoints.total_points).where(UserPoints.user_id == user_id)
                    ).scalar_one()
                    level = level_for(total)
                    session.execute(
                         update(UserPoints).where(UserPoints.user_id == user_id).values(level=level)
                    )
                    if transaction is not None:
                         session.add(PointsTransaction(
                              user_id=transaction.user_id,
                              collection_id=transaction.collection_id,
                              points=transaction.points,
                              type=transaction.type,
                              material_type=transaction.material_type,
                              description=transaction.description,
                              created_at=transaction.created_at,
                         ))
          except IntegrityError as exc:
               # Either the collection was already credited or another process
               # created the user's row first; the caller re-reads and decides.
               raise ConcurrentModification(f"Points credit for {user_id} conflicted") from exc
          return UserPointsState(user_id=user_id, total_points=total, level=level)

     def find_transaction(self, collection_id: str) -> Optional[PointsTransactionRecord]:
          with self._session("points.find_transaction") as session:
               row = session.execute(
                    select(PointsTransaction).where(PointsTransaction.collection_id == collection_id)
               ).scalar_one_or_none()
               return PointsTransactionRecord.model_validate(row) if row is not None else None

     def iter_user_points(self) -> Iterator[UserPointsState]:
          with self._session("points.iter_users") as session:
               for row in session.execute(select(UserPoints).order_by(UserPoints.user_id)).scalars():
                    yield UserPointsState.model_validate(row)

     def iter_transactions(self, user_id: Optional[str] = None) -> Iterator[PointsTransactionRecord]:
          query = select(PointsTransaction).order_by(PointsTransaction.id)
          if user_id is not None:
               query = query.where(PointsTransaction.user_id == user_id)
          with self._session("points.iter_transactions") as session:
               for row in session.execute(query).scalars():
                    yield PointsTransactionRecord.model_validate(row)


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class MemoryRecordStore(RecordStore):
     """
     Process-local record store.

     Records are immutable pydantic models, so readers can never observe a
     half-written one; scans iterate over a snapshot of the list.
     """

     def __init__(self) -> None:
          self._lock = threading.RLock()
          self._records: List[LedgerRecord] = []
          self._by_hash: Dict[str, LedgerRecord] = {}
          self._users: Dict[str, UserPointsState] = {}
          self._transactions: List[PointsTransactionRecord] = []

     def get(self, record_hash: str) -> Optional[LedgerRecord]:
          return self._by_hash.get(record_hash)

     def tail(self) -> Optional[LedgerRecord]:
          with self._lock:
               return self._records[-1] if self._records else None

     def append(self, record: LedgerRecord) -> LedgerRecord:
          with self._lock:
               current = self._records[-1].hash if self._records else GENESIS_HASH
               if current != record.previous_hash:
                    raise ConcurrentModification(
                         f"Chain tail moved: expected {record.previous_hash[:16]}, found {current[:16]}"
                    )
               self._records.append(record)
               self._by_hash[record.hash] = record
          return record

     def scan(
          self,
          predicate: Optional[RecordPredicate] = None,
          collection_id: Optional[str] = None,
     ) -> Iterator[LedgerRecord]:
          with self._lock:
               snapshot = list(self._records)
          for record in snapshot:
               if collection_id is not None and record.payload.collection_id != collection_id:
                    continue
               if predicate is None or predicate(record):
                    yield record

     def count(self) -> int:
          return len(self._records)

     def get_user_points(self, user_id: str) -> Optional[UserPointsState]:
          return self._users.get(user_id)

     def atomic_increment(
          self,
          user_id: str,
          delta: int,
          level_for: LevelFunction,
          transaction: Optional[PointsTransactionRecord] = None,
     ) -> UserPointsState:
          with self._lock:
               if transaction is not None and transaction.collection_id is not None:
                    if self.find_transaction(transaction.collection_id) is not None:
                         raise ConcurrentModification(
                              f"Collection {transaction.collection_id} already credited"
                         )
               current = self._users.get(user_id)
               total = (current.total_points if current is not None else 0) + delta
               state = UserPointsState(user_id=user_id, total_points=total, level=level_for(total))
               self._users[user_id] = state
               if transaction is not None:
                    self._transactions.append(
                         transaction.model_copy(update={"id": len(self._transactions) + 1})
                    )
          return state

     def find_transaction(self, collection_id: str) -> Optional[PointsTransactionRecord]:
          with self._lock:
               for transaction in self._transactions:
                    if transaction.collection_id == collection_id:
                         return transaction
          return None

     def iter_user_points(self) -> Iterator[UserPointsState]:
          with self._lock:
               snapshot = sorted(self._users.values(), key=lambda state: state.user_id)
          return iter(snapshot)

     def iter_transactions(self, user_id: Optional[str] = None) -> Iterator[PointsTransactionRecord]:
          with self._lock:
               snapshot = list(self._transactions)
          return (t for t in snapshot if user_id is None or t.user_id == user_id)
