# services/ledger_service.py
"""
Collection Ledger Service - blockchain-like immutable tracking records.

When a collection is registered or advances to a new stage:
1. Read the hash of the chain's tail ("0" when the chain is empty)
2. Stamp the current time and mine a nonce so that
   SHA-256(previous_hash + payload + nonce + timestamp) starts with
   `difficulty` zeros
3. Append the record; records are append-only, never updated or deleted

Verification: recompute each hash, check the link to the previous record and
the difficulty prefix. Broken records are reported, never removed.
"""
import json
import logging
import threading
import time
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from config import LEDGER_DIFFICULTY, LEDGER_MAX_NONCE, LEDGER_APPEND_RETRIES
from schemas.ledger import (
     LedgerPayload,
     LedgerRecord,
     RecordValidation,
     ChainVerification,
     CustodyChain,
     CustodyTimelineEntry,
     ChainEntry,
     ChainListing,
     LedgerStats,
)
from services.digest import (
     Digest,
     GENESIS_HASH,
     sha256_hex,
     compute_record_hash,
     meets_difficulty,
     normalize_timestamp,
)
from services.errors import ConcurrentModification, InvalidPayload, MiningCancelled, MiningTimeout
from services.record_store import RecordStore

logger = logging.getLogger(__name__)

# Stages a collection must pass through for its custody chain to be complete
EXPECTED_STAGES = ("collected", "processing", "shipped_to_industry", "completed")

# How often the mining loop checks for cancellation
_CANCEL_CHECK_INTERVAL = 1024

PayloadInput = Union[LedgerPayload, Mapping[str, Any]]


def _coerce_payload(payload: PayloadInput) -> LedgerPayload:
     if isinstance(payload, LedgerPayload):
          return payload
     try:
          return LedgerPayload.model_validate(payload)
     except ValidationError as exc:
          fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
          raise InvalidPayload(f"Invalid ledger payload fields: {', '.join(fields)}") from exc


def _utcnow() -> datetime:
     return datetime.utcnow()


class CollectionRecords:
     """
     Records of one collection in append order.

     Lazy and restartable: every iteration runs a fresh scan, so records
     appended in between are picked up.
     """

     def __init__(self, store: RecordStore, collection_id: str) -> None:
          self._store = store
          self.collection_id = collection_id

     def __iter__(self) -> Iterator[LedgerRecord]:
          return self._store.scan(collection_id=self.collection_id)


class Ledger:
     """Append-only, tamper-evident chain of collection tracking records."""

     def __init__(
          self,
          store: RecordStore,
          digest: Digest = sha256_hex,
          difficulty: int = LEDGER_DIFFICULTY,
          max_nonce: int = LEDGER_MAX_NONCE,
          append_retries: int = LEDGER_APPEND_RETRIES,
          clock: Callable[[], datetime] = _utcnow,
     ) -> None:
          if difficulty < 0:
               raise ValueError("difficulty must be >= 0")
          self._store = store
          self._digest = digest
          self.difficulty = difficulty
          self.max_nonce = max_nonce
          self.append_retries = append_retries
          self._clock = clock
          # Serializes read-tail -> mine -> append for the single global chain
          self._append_lock = threading.Lock()

     # -- hashing ------------------------------------------------------------

     def compute_hash(self, record: LedgerRecord) -> str:
          """Recompute a record's hash from its stored fields."""
          return compute_record_hash(
               record.previous_hash,
               record.payload,
               record.nonce,
               record.timestamp,
               self._digest,
          )

     def _mine(
          self,
          previous_hash: str,
          payload: LedgerPayload,
          timestamp: datetime,
          cancel: Optional[threading.Event],
     ) -> Tuple[int, str]:
          """Linear nonce search from 0 until the hash meets the difficulty."""
          for nonce in range(self.max_nonce):
               if cancel is not None and nonce % _CANCEL_CHECK_INTERVAL == 0 and cancel.is_set():
                    raise MiningCancelled(f"Mining cancelled after {nonce} attempts")
               record_hash = compute_record_hash(previous_hash, payload, nonce, timestamp, self._digest)
               if meets_difficulty(record_hash, self.difficulty):
                    return nonce, record_hash
          logger.warning(
               "Mining gave up after %d attempts at difficulty %d", self.max_nonce, self.difficulty
          )
          raise MiningTimeout(self.max_nonce, self.difficulty)

     # -- writes -------------------------------------------------------------

     def append(self, payload: PayloadInput, cancel: Optional[threading.Event] = None) -> LedgerRecord:
          """
          Mine and append a new record for a collection tracking event.

          Args:
               payload: LedgerPayload or mapping with collection_id, event_id,
                    stage, weight, location, responsible_person and optional
                    photo_hash
               cancel: Optional event; setting it abandons the nonce search

          Returns:
               The appended LedgerRecord

          Raises:
               InvalidPayload: If a required field is missing or malformed
               MiningTimeout: If no nonce is found within max_nonce attempts
               MiningCancelled: If cancel was set during mining
               ConcurrentModification: If the tail kept moving on every retry
          """
          payload = _coerce_payload(payload)

          for attempt in range(self.append_retries + 1):
               with self._append_lock:
                    previous_hash = self._store.tail_hash()
                    timestamp = normalize_timestamp(self._clock())
                    nonce, record_hash = self._mine(previous_hash, payload, timestamp, cancel)
                    record = LedgerRecord(
                         hash=record_hash,
                         previous_hash=previous_hash,
                         payload=payload,
                         timestamp=timestamp,
                         nonce=nonce,
                    )
                    try:
                         self._store.append(record)
                    except ConcurrentModification:
                         if attempt >= self.append_retries:
                              raise
                         logger.warning(
                              "Ledger tail moved during append (attempt %d), retrying", attempt + 1
                         )
                         continue

               logger.info(
                    "Ledger record appended: collection=%s stage=%s nonce=%d hash=%s",
                    payload.collection_id, payload.stage, nonce, record_hash[:16],
               )
               return record

          # Unreachable: the last failed attempt re-raises
          raise ConcurrentModification("Ledger append retries exhausted")

     # -- reads --------------------------------------------------------------

     def record(self, record_hash: str) -> Optional[LedgerRecord]:
          return self._store.get(record_hash)

     def history(self) -> List[LedgerRecord]:
          """Full chain in append order."""
          return list(self._store.scan())

     def records_for(self, collection_id: str) -> CollectionRecords:
          return CollectionRecords(self._store, collection_id)

     def validate(self, record_hash: str) -> RecordValidation:
          """
          Verify one record by recomputing its hash and comparing.

          A missing record is reported as invalid, not raised.
          """
          record = self._store.get(record_hash)
          if record is None:
               return RecordValidation(
                    hash=record_hash,
                    valid=False,
                    expected_hash=None,
                    message="Record not found",
               )

          expected = self.compute_hash(record)
          valid = expected == record.hash
          if not valid:
               logger.warning("Ledger record %s failed validation", record_hash[:16])
          return RecordValidation(
               hash=record_hash,
               valid=valid,
               expected_hash=expected,
               message="Record is valid" if valid else "Hash mismatch",
               record=record,
          )

     def verify_chain(
          self,
          timeout: Optional[float] = None,
          cancel: Optional[threading.Event] = None,
     ) -> ChainVerification:
          """
          Walk the whole chain and collect every integrity finding.

          Each record is checked for (a) link to the previous record's hash
          (GENESIS_HASH for the first), (b) hash recomputation and (c) the
          difficulty prefix. One error message per failing check; the walk
          never stops at the first failure.

          Args:
               timeout: Optional wall-clock budget in seconds
               cancel: Optional event to stop the walk cooperatively

          Returns:
               ChainVerification; complete=False (and valid=False) when the
               walk was stopped before the end of the chain
          """
          deadline = time.monotonic() + timeout if timeout is not None else None
          errors: List[str] = []
          previous_hash = GENESIS_HASH
          checked = 0

          for index, record in enumerate(self._store.scan()):
               if (cancel is not None and cancel.is_set()) or (
                    deadline is not None and time.monotonic() > deadline
               ):
                    errors.append(f"Verification stopped after {checked} records")
                    logger.warning("Chain verification stopped early after %d records", checked)
                    return ChainVerification(valid=False, errors=errors, checked=checked, complete=False)

               label = f"Record {index} ({record.hash[:16]})"
               if record.previous_hash != previous_hash:
                    errors.append(f"{label}: previous hash mismatch")
               if self.compute_hash(record) != record.hash:
                    errors.append(f"{label}: hash mismatch")
               if not meets_difficulty(record.hash, self.difficulty):
                    errors.append(f"{label}: hash does not meet difficulty requirement")

               previous_hash = record.hash
               checked += 1

          if errors:
               logger.warning("Chain verification found %d problems", len(errors))
          return ChainVerification(valid=not errors, errors=errors, checked=checked, complete=True)

     def custody_chain(self, collection_id: str) -> CustodyChain:
          """
          Ordered history of one collection.

          Valid only if every expected stage appears and every record
          individually validates.
          """
          records = sorted(self.records_for(collection_id), key=lambda r: r.timestamp)
          timeline = [
               CustodyTimelineEntry(
                    timestamp=record.timestamp,
                    stage=record.payload.stage,
                    location=record.payload.location,
                    responsible_person=record.payload.responsible_person,
                    hash=record.hash,
               )
               for record in records
          ]
          seen = {entry.stage for entry in timeline}
          missing = [stage for stage in EXPECTED_STAGES if stage not in seen]
          all_valid = all(self.compute_hash(record) == record.hash for record in records)

          return CustodyChain(
               collection_id=collection_id,
               valid=not missing and all_valid,
               records=records,
               timeline=timeline,
               missing_stages=missing,
          )

     def chain(self, limit: int = 50, collection_id: Optional[str] = None) -> ChainListing:
          """Newest-first listing with each record's recomputed hash."""
          records = list(self._store.scan(collection_id=collection_id))
          entries = []
          for record in reversed(records[-limit:] if limit > 0 else []):
               calculated = self.compute_hash(record)
               entries.append(ChainEntry(
                    record=record,
                    is_valid=calculated == record.hash,
                    calculated_hash=calculated,
               ))
          valid_count = sum(1 for entry in entries if entry.is_valid)
          return ChainListing(
               records=entries,
               total_records=len(entries),
               valid_records=valid_count,
               invalid_records=len(entries) - valid_count,
          )

     def stats(self) -> LedgerStats:
          total = 0
          collections = set()
          by_stage: Counter = Counter()
          first_time: Optional[datetime] = None
          last_time: Optional[datetime] = None

          for record in self._store.scan():
               total += 1
               collections.add(record.payload.collection_id)
               by_stage[record.payload.stage] += 1
               if first_time is None:
                    first_time = record.timestamp
               last_time = record.timestamp

          average = 0.0
          if total > 1:
               average = (last_time - first_time).total_seconds() / (total - 1)

          return LedgerStats(
               total_records=total,
               total_collections=len(collections),
               records_by_stage=dict(by_stage),
               last_record_time=last_time,
               average_block_time=average,
          )

     def export(self) -> str:
          """JSON document of the full chain plus its verification, for audits."""
          document = {
               "exported_at": datetime.utcnow().isoformat(),
               "difficulty": self.difficulty,
               "genesis_hash": GENESIS_HASH,
               "verification": self.verify_chain().model_dump(mode="json"),
               "records": [record.model_dump(mode="json") for record in self._store.scan()],
          }
          return json.dumps(document, indent=2, ensure_ascii=False)
