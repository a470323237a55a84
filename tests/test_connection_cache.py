import threading
from datetime import date, time, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from models import db, ConnectionCache
from models.slot import SLOT_BOOKED
from services.errors import ConflictError, PersistenceError
from services.slots import SlotService


def _boom():
    return OperationalError("SELECT 1", {}, Exception("boom"))


def test_get_memoizes_connection() -> None:
    calls = []

    def connect():
        calls.append(1)
        return object()

    cache = ConnectionCache(connect)

    first = cache.get()
    assert cache.get() is first
    assert cache.connected
    assert len(calls) == 1


def test_concurrent_callers_share_one_attempt() -> None:
    calls = []
    started = threading.Event()
    release = threading.Event()
    conn = object()

    def connect():
        calls.append(1)
        started.set()
        release.wait(5)
        return conn

    cache = ConnectionCache(connect)
    results = []
    lock = threading.Lock()

    def worker():
        got = cache.get()
        with lock:
            results.append(got)

    leader = threading.Thread(target=worker)
    leader.start()
    assert started.wait(5)
    followers = [threading.Thread(target=worker) for _ in range(8)]
    for t in followers:
        t.start()
    release.set()
    for t in [leader, *followers]:
        t.join(5)

    assert len(calls) == 1
    assert len(results) == 9
    assert all(r is conn for r in results)


def test_failure_is_not_cached() -> None:
    attempts = []
    conn = object()

    def connect():
        attempts.append(1)
        if len(attempts) == 1:
            raise _boom()
        return conn

    cache = ConnectionCache(connect)

    with pytest.raises(PersistenceError):
        cache.get()
    assert not cache.connected
    assert cache.get() is conn
    assert len(attempts) == 2


def test_non_database_errors_propagate_unchanged() -> None:
    def connect():
        raise RuntimeError("bad config")

    cache = ConnectionCache(connect)

    with pytest.raises(RuntimeError):
        cache.get()
    with pytest.raises(RuntimeError):
        cache.get()


def test_reset_forces_reconnect() -> None:
    cache = ConnectionCache(object)

    first = cache.get()
    cache.reset()

    assert not cache.connected
    assert cache.get() is not first


def test_service_surfaces_connection_failure(app) -> None:
    def connect():
        raise _boom()

    service = SlotService(db.session, connection=ConnectionCache(connect))

    with pytest.raises(PersistenceError):
        service.is_available(1, date.today(), time(6, 0), time(7, 0))


def test_health_reports_degraded_database(app) -> None:
    client = app.test_client()
    assert client.get("/health").status_code == 200

    def connect():
        raise _boom()

    app.extensions["connection_cache"] = ConnectionCache(connect)
    resp = client.get("/health")

    assert resp.status_code == 503
    assert resp.get_json()["status"] == "degraded"


def test_stale_reader_loses_reservation(app, service, court, make_booking) -> None:
    day = date.today() + timedelta(days=2)
    slot_id = service.generate_slots(court, day, day)[0].id

    # a second request loads the slot while it is still free
    other_session = Session(db.engine)
    other = SlotService(other_session)
    stale = other.get_slot(slot_id)

    winner = make_booking(service.get_slot(slot_id))
    service.reserve(service.get_slot(slot_id), winner)

    try:
        with pytest.raises(ConflictError):
            other.reserve(stale, None)
    finally:
        other_session.close()

    slot = service.get_slot(slot_id)
    db.session.refresh(slot)
    assert slot.status == SLOT_BOOKED
    assert slot.booking_id == winner
