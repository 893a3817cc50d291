# services/tracking_service.py
"""
Tracking Service - records collection lifecycle events.

Each event appends one ledger record. The first event of a collection must
be 'collected'; later events repeat the current stage or move to the next one:

     collected -> processing -> shipped_to_industry -> completed

The 'collected' event also awards the collector's points, once per collection.
Transient storage failures are retried with exponential backoff; retries are
safe because points are keyed on the collection id and ledger records on the
(collection_id, event_id) pair. The lookup, the stage check and the append
for one collection run under that collection's lock, so a replayed event
can neither append twice nor move a collection backwards.
"""
import logging
import time
import uuid
from typing import Callable, Optional, TypeVar

from config import STORAGE_RETRY_ATTEMPTS, STORAGE_RETRY_BACKOFF
from schemas.collection import CollectionEventResponse
from schemas.ledger import LedgerRecord
from services.errors import InvalidStageTransition, StorageUnavailable
from services.ledger_service import EXPECTED_STAGES, Ledger
from services.locks import KeyedLocks
from services.rewards_service import RewardsEngine, calculate_points

logger = logging.getLogger(__name__)

T = TypeVar("T")

STAGE_ORDER = EXPECTED_STAGES


def generate_tracking_id() -> str:
     """Unique, human-readable tracking id, e.g. TRK-1718000000000-3F9A1C2B7."""
     return f"TRK-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}".upper()


def retry_on_storage_error(
     operation: Callable[[], T],
     attempts: int = STORAGE_RETRY_ATTEMPTS,
     backoff: float = STORAGE_RETRY_BACKOFF,
     sleep: Callable[[float], None] = time.sleep,
) -> T:
     """Run operation, retrying StorageUnavailable with exponential backoff."""
     for attempt in range(1, attempts + 1):
          try:
               return operation()
          except StorageUnavailable:
               if attempt >= attempts:
                    raise
               delay = backoff * (2 ** (attempt - 1))
               logger.warning("Storage unavailable (attempt %d/%d), retrying in %.2fs",
                              attempt, attempts, delay)
               sleep(delay)
     raise StorageUnavailable("No attempts made")


class TrackingService:
     """Orchestrates the ledger and rewards engine for collection events."""

     def __init__(
          self,
          ledger: Ledger,
          rewards: RewardsEngine,
          attempts: int = STORAGE_RETRY_ATTEMPTS,
          backoff: float = STORAGE_RETRY_BACKOFF,
          sleep: Callable[[float], None] = time.sleep,
          locks: Optional[KeyedLocks] = None,
     ) -> None:
          self.ledger = ledger
          self.rewards = rewards
          # Pass one instance to every TrackingService writing to the same ledger
          self._locks = locks if locks is not None else KeyedLocks()
          self._attempts = attempts
          self._backoff = backoff
          self._sleep = sleep

     def _retry(self, operation: Callable[[], T]) -> T:
          return retry_on_storage_error(operation, self._attempts, self._backoff, self._sleep)

     def current_stage(self, collection_id: str) -> Optional[str]:
          stage = None
          for record in self.ledger.records_for(collection_id):
               stage = record.payload.stage
          return stage

     @staticmethod
     def check_transition(current: Optional[str], stage: str) -> None:
          """
          Raises:
               InvalidStageTransition: If stage does not follow current
          """
          if stage not in STAGE_ORDER:
               raise InvalidStageTransition(f"Unknown stage {stage!r}")
          if current is None:
               if stage != STAGE_ORDER[0]:
                    raise InvalidStageTransition(
                         f"First event must be {STAGE_ORDER[0]!r}, got {stage!r}"
                    )
               return
          if current not in STAGE_ORDER:
               raise InvalidStageTransition(f"Collection is at unknown stage {current!r}")
          current_index = STAGE_ORDER.index(current)
          next_index = STAGE_ORDER.index(stage)
          if next_index not in (current_index, current_index + 1):
               raise InvalidStageTransition(f"Cannot move from {current!r} to {stage!r}")

     def _find_event(self, collection_id: str, event_id: str) -> Optional[LedgerRecord]:
          for record in self.ledger.records_for(collection_id):
               if record.payload.event_id == event_id:
                    return record
          return None

     def record_event(
          self,
          collection_id: str,
          stage: str,
          weight: float,
          location: str,
          responsible_person: str,
          event_id: Optional[str] = None,
          photo_hash: Optional[str] = None,
          user_id: Optional[str] = None,
          material_type: Optional[str] = None,
     ) -> CollectionEventResponse:
          """
          Record one tracking event for a collection.

          Args:
               collection_id: Collection the event belongs to
               stage: Lifecycle stage of the event
               weight: Weight in kg at this stage
               location: Where the event happened
               responsible_person: Who handled the material
               event_id: Idempotency key for the ledger record (generated if None)
               photo_hash: Optional fingerprint of an evidence photo
               user_id: Collector to credit on the 'collected' event
               material_type: Material of the collection, required to credit points

          Returns:
               CollectionEventResponse with the ledger record and any points awarded

          Raises:
               InvalidStageTransition: If the stage breaks the progression
               InvalidPayload / UnknownMaterialType / InvalidWeight: Bad input
          """
          event_id = event_id or generate_tracking_id()
          awarding = stage == STAGE_ORDER[0] and user_id is not None
          if awarding:
               if material_type is None:
                    raise ValueError("material_type is required to award points for a collection")
               # Fail on bad material or weight before anything is written
               calculate_points(material_type, weight)

          with self._locks.hold(collection_id):
               record = self._retry(lambda: self._find_event(collection_id, event_id))
               if record is None:
                    self.check_transition(self._retry(lambda: self.current_stage(collection_id)), stage)
                    payload = dict(
                         collection_id=collection_id,
                         event_id=event_id,
                         stage=stage,
                         weight=weight,
                         location=location,
                         responsible_person=responsible_person,
                         photo_hash=photo_hash,
                    )
                    record = self._retry(lambda: self.ledger.append(payload))
               else:
                    logger.info("Event %s of collection %s already recorded", event_id, collection_id)

          points = 0
          user_points = None
          if awarding:
               points, user_points = self._retry(
                    lambda: self.rewards.award_collection(user_id, collection_id, material_type, weight)
               )

          return CollectionEventResponse(
               collection_id=collection_id,
               record=record,
               points_awarded=points,
               user_points=user_points,
          )
