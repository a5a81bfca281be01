"""Tests for idempotency-key admission."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest
from sqlmodel import Session, select

from storeapi.db import build_engine, create_db_and_tables
from storeapi.errors import DuplicateIdempotencyKey, InvalidIdempotencyKey
from storeapi.idempotency import IdempotencyLedger
from storeapi.models import IdempotencyKey
from storeapi.repositories import IdempotencyKeyRepository


def _records(session: Session) -> list[IdempotencyKey]:
    return list(session.exec(select(IdempotencyKey)).all())


def test_admit_records_the_request(ledger: IdempotencyLedger, session: Session) -> None:
    ledger.admit("idem-1", "admin", "POST", "/api/products")

    [record] = _records(session)
    assert record.key == "idem-1"
    assert record.owner == "admin"
    assert record.http_method == "POST"
    assert record.path == "/api/products"
    assert record.created_at is not None


def test_second_admit_with_same_key_and_owner_is_rejected(ledger: IdempotencyLedger, session: Session) -> None:
    ledger.admit("idem-1", "admin", "POST", "/api/products")

    with pytest.raises(DuplicateIdempotencyKey) as excinfo:
        ledger.admit("idem-1", "admin", "DELETE", "/api/products/3")

    assert excinfo.value.key == "idem-1"
    assert len(_records(session)) == 1


def test_same_key_is_independent_per_owner(ledger: IdempotencyLedger, session: Session) -> None:
    ledger.admit("idem-1", "admin", "POST", "/api/products")
    ledger.admit("idem-1", "user", "POST", "/api/products")

    assert {record.owner for record in _records(session)} == {"admin", "user"}


@pytest.mark.parametrize("key", [None, "", "   ", "x" * 129])
def test_invalid_keys_are_rejected_before_touching_the_store(
    ledger: IdempotencyLedger, session: Session, key: str | None
) -> None:
    with pytest.raises(InvalidIdempotencyKey):
        ledger.admit(key, "admin", "POST", "/api/products")

    assert _records(session) == []


def test_key_of_maximum_length_is_accepted(ledger: IdempotencyLedger) -> None:
    ledger.admit("k" * 128, "admin", "POST", "/api/products")


def test_constraint_violation_on_insert_is_reported_as_duplicate(
    ledger: IdempotencyLedger, session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A concurrent admit that slips past the existence check still loses."""

    ledger.admit("idem-race", "admin", "POST", "/api/products")
    monkeypatch.setattr(ledger.repository, "exists_by_key_and_owner", lambda key, owner: False)

    with pytest.raises(DuplicateIdempotencyKey):
        ledger.admit("idem-race", "admin", "POST", "/api/products")

    # the session was rolled back and is still usable
    ledger.admit("idem-next", "admin", "POST", "/api/products")
    assert {record.key for record in _records(session)} == {"idem-race", "idem-next"}


def test_concurrent_admits_for_same_key_admit_exactly_one(tmp_path: Path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_db_and_tables(engine)

    workers = 8
    barrier = threading.Barrier(workers)
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt() -> None:
        with Session(engine) as session:
            ledger = IdempotencyLedger(IdempotencyKeyRepository(session))
            barrier.wait()
            try:
                ledger.admit("idem-shared", "admin", "POST", "/api/products")
                outcome = "admitted"
            except DuplicateIdempotencyKey:
                outcome = "duplicate"
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("admitted") == 1
    assert outcomes.count("duplicate") == workers - 1
    with Session(engine) as session:
        assert len(_records(session)) == 1
    engine.dispose()
