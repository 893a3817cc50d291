"""Tests for the per-key lock registry."""

import threading

from services.locks import KeyedLocks


def test_entry_is_dropped_after_release():
    locks = KeyedLocks()

    with locks.hold("col-1"):
        assert len(locks) == 1

    assert len(locks) == 0


def test_same_key_is_exclusive():
    locks = KeyedLocks()
    entered = threading.Event()

    def contender():
        with locks.hold("col-1"):
            entered.set()

    with locks.hold("col-1"):
        worker = threading.Thread(target=contender)
        worker.start()
        assert not entered.wait(timeout=0.2)

    assert entered.wait(timeout=5)
    worker.join()
    assert len(locks) == 0


def test_different_keys_do_not_block():
    locks = KeyedLocks()
    entered = threading.Event()

    def other():
        with locks.hold("col-2"):
            entered.set()

    with locks.hold("col-1"):
        worker = threading.Thread(target=other)
        worker.start()
        assert entered.wait(timeout=5)
        worker.join()

    assert len(locks) == 0


def test_entry_kept_while_a_waiter_remains():
    locks = KeyedLocks()
    release = threading.Event()
    holding = threading.Event()

    def holder():
        with locks.hold("col-1"):
            holding.set()
            release.wait(timeout=5)

    worker = threading.Thread(target=holder)
    worker.start()
    holding.wait(timeout=5)
    assert len(locks) == 1

    release.set()
    worker.join()
    assert len(locks) == 0
