from datetime import date, time, timedelta

import pytest

from models import db
from models.court import Court
from models.notification import Notification
from models.slot import TimeSlot, SLOT_AVAILABLE, SLOT_BOOKED, SLOT_BLOCKED, SLOT_MAINTENANCE
from services.errors import ConflictError, ValidationError
from services.slots import overlaps, slot_windows

DAY = date.today() + timedelta(days=3)


def _live_slots(court_id):
    return (
        TimeSlot.query
        .filter_by(court_id=court_id, deleted_at=None)
        .order_by(TimeSlot.date, TimeSlot.start_time)
        .all()
    )


# ---------- generation ----------

def test_generate_single_day_yields_one_slot_per_window(service, court) -> None:
    created = service.generate_slots(court, DAY, DAY)

    assert [(s.start_time, s.end_time) for s in created] == [
        (time(6, 0), time(7, 0)),
        (time(7, 0), time(8, 0)),
    ]
    assert all(s.status == SLOT_AVAILABLE for s in created)
    assert all(s.price == 1000 for s in created)
    assert all(s.created_at is not None and s.updated_at is not None for s in created)


def test_generated_slots_stay_inside_operating_hours(service, make_court) -> None:
    court = make_court(open_time=time(9, 0), close_time=time(12, 0), duration=45)

    created = service.generate_slots(court, DAY, DAY + timedelta(days=2))

    assert len(created) == 3 * 4
    for slot in created:
        assert slot.start_time < slot.end_time
        assert court.open_time <= slot.start_time
        assert slot.end_time <= court.close_time


def test_generate_drops_trailing_partial_window(service, make_court) -> None:
    court = make_court(open_time=time(6, 0), close_time=time(7, 30), duration=60)

    created = service.generate_slots(court, DAY, DAY)

    assert [(s.start_time, s.end_time) for s in created] == [(time(6, 0), time(7, 0))]


def test_price_is_prorated_to_slot_length(service, make_court) -> None:
    court = make_court(duration=30, hourly_rate=1200)

    created = service.generate_slots(court, DAY, DAY)

    assert {s.price for s in created} == {600}


def test_generate_twice_creates_no_duplicates(service, court) -> None:
    first = service.generate_slots(court, DAY, DAY + timedelta(days=1))
    second = service.generate_slots(court, DAY, DAY + timedelta(days=1))

    assert len(first) == 4
    assert second == []
    assert len(_live_slots(court.id)) == 4


def test_generate_rejects_inverted_range(service, court) -> None:
    with pytest.raises(ValidationError):
        service.generate_slots(court, DAY, DAY - timedelta(days=1))


@pytest.mark.parametrize(
    ("open_time", "close_time", "duration"),
    [
        (time(8, 0), time(8, 0), 60),
        (time(10, 0), time(8, 0), 60),
        (time(8, 0), time(8, 30), 60),
        (time(8, 0), time(12, 0), 0),
    ],
)
def test_generate_rejects_configs_without_windows(service, open_time, close_time, duration) -> None:
    court = Court(name="Broken", open_time=open_time, close_time=close_time, slot_duration_minutes=duration, hourly_rate=1)

    with pytest.raises(ValidationError):
        service.generate_slots(court, DAY, DAY)

    assert TimeSlot.query.count() == 0


def test_clear_existing_keeps_booked_and_blocked_slots(service, make_court, make_booking) -> None:
    court = make_court(open_time=time(6, 0), close_time=time(10, 0))
    slots = service.generate_slots(court, DAY, DAY)
    booked, blocked = slots[0], slots[1]
    service.reserve(booked, make_booking(booked))
    service.set_status(court.id, [blocked.id], SLOT_BLOCKED, reason="Resurfacing")
    court_id, booked_id, blocked_id = court.id, booked.id, blocked.id
    db.session.expunge_all()

    recreated = service.generate_slots(db.session.get(Court, court_id), DAY, DAY, clear_existing=True)

    assert [(s.start_time, s.end_time) for s in recreated] == [
        (time(8, 0), time(9, 0)),
        (time(9, 0), time(10, 0)),
    ]
    statuses = {s.id: s.status for s in _live_slots(court_id)}
    assert statuses[booked_id] == SLOT_BOOKED
    assert statuses[blocked_id] == SLOT_BLOCKED
    assert len(statuses) == 4


def test_regeneration_skips_windows_overlapping_old_grid(service, court, make_booking) -> None:
    slots = service.generate_slots(court, DAY, DAY)
    service.reserve(slots[0], make_booking(slots[0]))
    court.slot_duration_minutes = 30
    court.close_time = time(9, 0)
    db.session.commit()

    created = service.generate_slots(court, DAY, DAY)

    assert [(s.start_time, s.end_time) for s in created] == [
        (time(8, 0), time(8, 30)),
        (time(8, 30), time(9, 0)),
    ]
    assert service.find_conflicts(court.id, DAY, time(6, 0), time(7, 0))[0].id == slots[0].id


def test_slot_windows_steps_by_duration() -> None:
    assert slot_windows(time(6, 0), time(8, 0), 30) == [
        (time(6, 0), time(6, 30)),
        (time(6, 30), time(7, 0)),
        (time(7, 0), time(7, 30)),
        (time(7, 30), time(8, 0)),
    ]


# ---------- conflicts ----------

@pytest.mark.parametrize(
    ("proposed", "expected"),
    [
        ((time(9, 30), time(10, 30)), True),
        ((time(8, 30), time(9, 30)), True),
        ((time(9, 15), time(9, 45)), True),
        ((time(8, 0), time(11, 0)), True),
        ((time(10, 0), time(11, 0)), False),
        ((time(8, 0), time(9, 0)), False),
    ],
)
def test_overlaps_is_half_open(proposed, expected) -> None:
    assert overlaps(proposed[0], proposed[1], time(9, 0), time(10, 0)) is expected


def test_find_conflicts_reports_overlapping_booked_slot(service, make_court, make_booking) -> None:
    court = make_court(open_time=time(8, 0), close_time=time(12, 0))
    slots = service.generate_slots(court, DAY, DAY)
    nine = slots[1]
    service.reserve(nine, make_booking(nine))

    overlapping = service.find_conflicts(court.id, DAY, time(9, 30), time(10, 30))
    touching = service.find_conflicts(court.id, DAY, time(10, 0), time(11, 0))

    assert [s.id for s in overlapping] == [nine.id]
    assert touching == []


def test_find_conflicts_never_returns_available_slots(service, make_court) -> None:
    court = make_court(open_time=time(8, 0), close_time=time(12, 0))
    slots = service.generate_slots(court, DAY, DAY)
    service.set_status(court.id, [slots[2].id], SLOT_MAINTENANCE)

    found = service.find_conflicts(court.id, DAY, time(8, 0), time(12, 0))

    assert [s.id for s in found] == [slots[2].id]
    assert all(s.status != SLOT_AVAILABLE for s in found)


def test_find_conflicts_is_scoped_to_court_and_date(service, make_court, make_booking) -> None:
    court_a = make_court(name="A", open_time=time(8, 0), close_time=time(10, 0))
    court_b = make_court(name="B", open_time=time(8, 0), close_time=time(10, 0))
    slot = service.generate_slots(court_a, DAY, DAY)[0]
    service.generate_slots(court_b, DAY, DAY)
    service.reserve(slot, make_booking(slot))

    assert service.find_conflicts(court_b.id, DAY, time(8, 0), time(9, 0)) == []
    assert service.find_conflicts(court_a.id, DAY + timedelta(days=1), time(8, 0), time(9, 0)) == []


def test_find_conflicts_rejects_inverted_interval(service, court) -> None:
    with pytest.raises(ValidationError):
        service.find_conflicts(court.id, DAY, time(10, 0), time(9, 0))


# ---------- availability ----------

def test_is_available_only_for_exact_free_slot(service, court, make_booking) -> None:
    slots = service.generate_slots(court, DAY, DAY)

    assert service.is_available(court.id, DAY, time(6, 0), time(7, 0)) is True
    # unscheduled intervals are never available
    assert service.is_available(court.id, DAY, time(6, 0), time(6, 30)) is False
    assert service.is_available(court.id, DAY, time(20, 0), time(21, 0)) is False
    assert service.is_available(court.id, DAY + timedelta(days=7), time(6, 0), time(7, 0)) is False

    service.reserve(slots[0], make_booking(slots[0]))
    service.set_status(court.id, [slots[1].id], SLOT_BLOCKED)

    assert service.is_available(court.id, DAY, time(6, 0), time(7, 0)) is False
    assert service.is_available(court.id, DAY, time(7, 0), time(8, 0)) is False


def test_is_available_does_not_reserve(service, court) -> None:
    slot = service.generate_slots(court, DAY, DAY)[0]

    service.is_available(court.id, DAY, time(6, 0), time(7, 0))

    db.session.refresh(slot)
    assert slot.status == SLOT_AVAILABLE
    assert slot.current_bookings == 0


# ---------- reservation ----------

def test_reserve_marks_slot_booked_and_notifies(service, court, player, make_booking) -> None:
    slot = service.generate_slots(court, DAY, DAY)[0]
    booking_id = make_booking(slot)

    service.reserve(slot, booking_id, user_id=player.id)

    assert slot.status == SLOT_BOOKED
    assert slot.current_bookings == 1
    assert slot.booking_id == booking_id
    assert slot.updated_by == player.id
    note = Notification.query.filter_by(user_id=player.id).one()
    assert note.type == "slot_booked"


def test_second_reservation_of_same_slot_conflicts(service, court, make_booking) -> None:
    slot = service.generate_slots(court, DAY, DAY)[0]
    first, second = make_booking(slot), make_booking(slot)

    service.reserve(slot, first)
    with pytest.raises(ConflictError) as exc_info:
        service.reserve(slot, second)

    assert exc_info.value.payload["retryable"] is True
    db.session.refresh(slot)
    assert slot.status == SLOT_BOOKED
    assert slot.current_bookings == 1
    assert slot.booking_id == first


def test_reserve_blocked_slot_conflicts(service, court, make_booking) -> None:
    slot = service.generate_slots(court, DAY, DAY)[0]
    service.set_status(court.id, [slot.id], SLOT_BLOCKED)

    with pytest.raises(ConflictError):
        service.reserve(slot, make_booking(slot))


def test_multi_seat_slot_books_out_at_capacity(service, court, make_booking) -> None:
    slot = service.generate_slots(court, DAY, DAY)[0]
    slot.max_bookings = 2
    db.session.commit()

    service.reserve(slot, make_booking(slot))
    assert slot.status == SLOT_AVAILABLE
    assert slot.current_bookings == 1
    assert service.is_available(court.id, DAY, time(6, 0), time(7, 0)) is True

    service.reserve(slot, make_booking(slot))
    assert slot.status == SLOT_BOOKED
    assert slot.current_bookings == 2

    with pytest.raises(ConflictError):
        service.reserve(slot, make_booking(slot))
    db.session.refresh(slot)
    assert slot.current_bookings == 2


def test_release_returns_slot_to_available(service, court, make_booking) -> None:
    slot = service.generate_slots(court, DAY, DAY)[0]
    service.reserve(slot, make_booking(slot))

    service.release(slot)

    assert slot.status == SLOT_AVAILABLE
    assert slot.current_bookings == 0
    assert slot.booking_id is None


# ---------- blocking ----------

def test_block_interval_refuses_when_booked_slot_inside(service, make_court, make_booking) -> None:
    court = make_court(open_time=time(8, 0), close_time=time(12, 0))
    slots = service.generate_slots(court, DAY, DAY)
    service.reserve(slots[1], make_booking(slots[1]))

    with pytest.raises(ConflictError) as exc_info:
        service.block_interval(court.id, DAY, time(9, 0), time(11, 0))

    assert [s.id for s in exc_info.value.conflicts] == [slots[1].id]
    assert [s.status for s in _live_slots(court.id)] == [SLOT_AVAILABLE, SLOT_BOOKED, SLOT_AVAILABLE, SLOT_AVAILABLE]


def test_block_interval_blocks_overlapping_free_slots(service, make_court, owner) -> None:
    court = make_court(open_time=time(8, 0), close_time=time(12, 0))
    service.generate_slots(court, DAY, DAY)

    count = service.block_interval(court.id, DAY, time(9, 30), time(11, 0), status=SLOT_MAINTENANCE, reason="Lights")

    assert count == 2
    assert [s.status for s in _live_slots(court.id)] == [SLOT_AVAILABLE, SLOT_MAINTENANCE, SLOT_MAINTENANCE, SLOT_AVAILABLE]
    note = Notification.query.filter_by(user_id=owner.id).one()
    assert note.type == "slot_blocked"


def test_set_status_never_touches_booked_slots(service, court, make_booking) -> None:
    slots = service.generate_slots(court, DAY, DAY)
    service.reserve(slots[0], make_booking(slots[0]))

    count = service.set_status(court.id, [s.id for s in slots], SLOT_BLOCKED)

    assert count == 1
    assert [s.status for s in _live_slots(court.id)] == [SLOT_BOOKED, SLOT_BLOCKED]


def test_set_status_unblocks(service, court) -> None:
    slots = service.generate_slots(court, DAY, DAY)
    service.set_status(court.id, [slots[0].id], SLOT_BLOCKED, reason="Private event")

    count = service.set_status(court.id, [slots[0].id], SLOT_AVAILABLE)

    assert count == 1
    slot = db.session.get(TimeSlot, slots[0].id)
    assert slot.status == SLOT_AVAILABLE
    assert slot.block_reason is None


def test_set_status_rejects_booked(service, court) -> None:
    slots = service.generate_slots(court, DAY, DAY)

    with pytest.raises(ValidationError):
        service.set_status(court.id, [slots[0].id], SLOT_BOOKED)


# ---------- retention ----------

def test_delete_old_slots_keeps_referenced_and_recent_slots(service, court, make_booking) -> None:
    today = date.today()
    old = service.generate_slots(court, today - timedelta(days=40), today - timedelta(days=40))
    recent = service.generate_slots(court, today - timedelta(days=5), today - timedelta(days=5))
    service.reserve(old[0], make_booking(old[0]))

    deleted = service.delete_old_slots(30, today=today)

    assert deleted == 1
    live_ids = {s.id for s in _live_slots(court.id)}
    assert old[0].id in live_ids
    assert old[1].id not in live_ids
    assert {s.id for s in recent} <= live_ids
    # soft delete: the row is still there
    assert db.session.get(TimeSlot, old[1].id).deleted_at is not None


def test_delete_old_slots_is_repeatable(service, court) -> None:
    today = date.today()
    service.generate_slots(court, today - timedelta(days=60), today - timedelta(days=59))

    assert service.delete_old_slots(30, today=today) == 4
    assert service.delete_old_slots(30, today=today) == 0


def test_delete_old_slots_rejects_negative_window(service) -> None:
    with pytest.raises(ValidationError):
        service.delete_old_slots(-1)


def test_list_slots_filters_by_status(service, court) -> None:
    slots = service.generate_slots(court, DAY, DAY)
    service.set_status(court.id, [slots[1].id], SLOT_BLOCKED)

    blocked = service.list_slots(court.id, DAY, DAY, status=SLOT_BLOCKED)

    assert [s.id for s in blocked] == [slots[1].id]
    with pytest.raises(ValidationError):
        service.list_slots(court.id, DAY, DAY, status="NOPE")
