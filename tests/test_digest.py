"""Tests for the digest primitive, canonical serialization and difficulty predicate."""

import hashlib
import json
from datetime import datetime, timedelta, timezone

from schemas.ledger import LedgerPayload
from services.digest import (
    GENESIS_HASH,
    canonical_serialize,
    compute_record_hash,
    generate_photo_hash,
    meets_difficulty,
    normalize_timestamp,
    sha256_hex,
)
from tests.conftest import make_payload


def test_sha256_hex_matches_hashlib():
    assert sha256_hex("abc") == hashlib.sha256(b"abc").hexdigest()


def test_genesis_sentinel_is_zero():
    assert GENESIS_HASH == "0"


def test_canonical_serialization_has_fixed_key_order():
    payload = LedgerPayload(**make_payload(photo_hash="ff00"))

    data = json.loads(canonical_serialize(payload))

    assert list(data) == [
        "collectionId",
        "eventId",
        "stage",
        "weight",
        "location",
        "responsiblePerson",
        "photoHash",
    ]
    assert data["photoHash"] == "ff00"


def test_canonical_serialization_keeps_absent_photo_hash_as_null():
    payload = LedgerPayload(**make_payload())

    assert '"photoHash":null' in canonical_serialize(payload)


def test_integer_and_float_weights_serialize_identically():
    as_int = LedgerPayload(**make_payload(weight=2))
    as_float = LedgerPayload(**make_payload(weight=2.0))

    assert canonical_serialize(as_int) == canonical_serialize(as_float)


def test_normalize_timestamp_truncates_to_milliseconds():
    ts = datetime(2026, 1, 2, 3, 4, 5, 123987)

    assert normalize_timestamp(ts) == datetime(2026, 1, 2, 3, 4, 5, 123000)


def test_normalize_timestamp_converts_aware_to_naive_utc():
    aware = datetime(2026, 1, 2, 0, 0, 0, tzinfo=timezone(timedelta(hours=-3)))

    assert normalize_timestamp(aware) == datetime(2026, 1, 2, 3, 0, 0)


def test_record_hash_is_deterministic_and_covers_every_field():
    payload = LedgerPayload(**make_payload())
    ts = datetime(2026, 1, 1, 12, 0, 0)
    base = compute_record_hash("0", payload, 7, ts)

    assert compute_record_hash("0", payload, 7, ts) == base
    assert compute_record_hash("1", payload, 7, ts) != base
    assert compute_record_hash("0", payload, 8, ts) != base
    assert compute_record_hash("0", payload, 7, ts + timedelta(milliseconds=1)) != base
    changed = payload.model_copy(update={"location": "Outro lugar"})
    assert compute_record_hash("0", changed, 7, ts) != base


def test_record_hash_uses_injected_digest():
    payload = LedgerPayload(**make_payload())
    ts = datetime(2026, 1, 1)

    result = compute_record_hash("0", payload, 0, ts, digest=lambda data: "x" + str(len(data)))

    assert result.startswith("x")


def test_meets_difficulty():
    assert meets_difficulty("00ab", 2)
    assert not meets_difficulty("0ab0", 2)
    assert meets_difficulty("abcd", 0)


def test_generate_photo_hash_accepts_bytes_and_text():
    assert generate_photo_hash("foto") == generate_photo_hash(b"foto")
    assert len(generate_photo_hash(b"\x00\x01")) == 64
