"""Ledger behaviour on the SQLAlchemy record store (SQLite file per test)."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import update

from database import check_connection, get_session_context
from models import BlockchainRecord
from services.digest import GENESIS_HASH
from services.errors import ConcurrentModification
from tests.conftest import make_payload


def test_append_and_read_back(sql_ledger, sql_store):
    record = sql_ledger.append(make_payload())

    assert record.previous_hash == GENESIS_HASH
    assert sql_store.get(record.hash) == record
    assert sql_store.tail() == record
    assert sql_store.count() == 1


def test_chain_survives_round_trip_through_database(sql_ledger):
    for i in range(5):
        sql_ledger.append(make_payload(event_id=f"evt-{i}", photo_hash="ab" * 32 if i % 2 else None))

    result = sql_ledger.verify_chain()

    assert result.valid
    assert result.checked == 5


def test_tampered_row_is_detected(sql_ledger, session_factory):
    record = sql_ledger.append(make_payload())
    sql_ledger.append(make_payload(event_id="evt-2", stage="processing"))

    with get_session_context(session_factory) as session:
        session.execute(
            update(BlockchainRecord).where(BlockchainRecord.hash == record.hash).values(weight=250.0)
        )

    assert not sql_ledger.validate(record.hash).valid
    result = sql_ledger.verify_chain()
    assert not result.valid
    assert any("Record 0 " in error for error in result.errors)


def test_stale_append_is_rejected(sql_ledger, sql_store):
    first = sql_ledger.append(make_payload())
    stale = first.model_copy(update={"hash": "00" + "e" * 62, "previous_hash": GENESIS_HASH})

    with pytest.raises(ConcurrentModification):
        sql_store.append(stale)
    assert sql_store.count() == 1


def test_concurrent_appends_keep_single_chain(sql_ledger, sql_store):
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda i: sql_ledger.append(make_payload(event_id=f"evt-{i}")), range(20)))

    assert sql_store.count() == 20
    assert sql_ledger.verify_chain().valid


def test_records_for_uses_collection_filter(sql_ledger):
    sql_ledger.append(make_payload(collection_id="col-a", event_id="1"))
    sql_ledger.append(make_payload(collection_id="col-b", event_id="2"))

    records = list(sql_ledger.records_for("col-b"))

    assert [r.payload.event_id for r in records] == ["2"]


def test_check_connection(sql_engine):
    assert check_connection(sql_engine) is True
