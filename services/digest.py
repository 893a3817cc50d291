# services/digest.py
"""
Digest primitive and difficulty predicate for the collection ledger.

Hashed input (canonical format):
     previous_hash + canonical_payload + nonce + timestamp

- canonical_payload: compact JSON of the payload fields in fixed order
  (collectionId, eventId, stage, weight, location, responsiblePerson, photoHash)
- timestamp: naive UTC ISO-8601 with millisecond precision

SHA-256 is the single digest used for both mining and verification.
"""
import hashlib
import json
from datetime import datetime, timezone
from typing import Callable, Union

from schemas.ledger import LedgerPayload


Digest = Callable[[str], str]

# Sentinel previous_hash of the first record in the chain
GENESIS_HASH = "0"


def sha256_hex(data: str) -> str:
     """Return the SHA-256 hex digest of a UTF-8 string."""
     return hashlib.sha256(data.encode("utf-8")).hexdigest()


def canonical_serialize(payload: LedgerPayload) -> str:
     """Serialize a payload to its canonical JSON form."""
     ordered = {
          "collectionId": payload.collection_id,
          "eventId": payload.event_id,
          "stage": payload.stage,
          "weight": float(payload.weight),
          "location": payload.location,
          "responsiblePerson": payload.responsible_person,
          "photoHash": payload.photo_hash,
     }
     return json.dumps(ordered, separators=(",", ":"), ensure_ascii=False)


def normalize_timestamp(ts: datetime) -> datetime:
     """Convert to naive UTC truncated to milliseconds (the stored precision)."""
     if ts.tzinfo is not None:
          ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
     return ts.replace(microsecond=(ts.microsecond // 1000) * 1000)


def _format_timestamp(ts: datetime) -> str:
     return normalize_timestamp(ts).isoformat(timespec="milliseconds")


def compute_record_hash(
     previous_hash: str,
     payload: LedgerPayload,
     nonce: int,
     timestamp: datetime,
     digest: Digest = sha256_hex,
) -> str:
     """Compute the hash of a ledger record from its chained fields."""
     data = f"{previous_hash}{canonical_serialize(payload)}{nonce}{_format_timestamp(timestamp)}"
     return digest(data)


def meets_difficulty(record_hash: str, difficulty: int) -> bool:
     """Difficulty predicate: the hash starts with `difficulty` zero characters."""
     return record_hash.startswith("0" * difficulty)


def generate_photo_hash(photo_data: Union[bytes, str]) -> str:
     """Fingerprint a photo so a ledger record can reference it by content."""
     if isinstance(photo_data, str):
          photo_data = photo_data.encode("utf-8")
     return hashlib.sha256(photo_data).hexdigest()
