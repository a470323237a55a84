"""
Slot calendar for courts: generation, conflict detection, availability,
retention and reservation.

Every write that decides who gets a slot is a single conditional UPDATE, so
two requests racing for the same slot cannot both win.
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime, timedelta

from sqlalchemy import case, delete, func, null, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.booking import Booking, BOOKING_CONFIRMED
from models.court import Court
from models.slot import (
    TimeSlot,
    SLOT_AVAILABLE,
    SLOT_BOOKED,
    SLOT_STATUSES,
    BLOCK_STATUSES,
)
from services.errors import ConflictError, NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    # half-open: touching endpoints do not overlap
    return a_start < b_end and b_start < a_end


def validate_interval(start_time, end_time):
    if start_time is None or end_time is None:
        raise ValidationError("start_time and end_time are required")
    if start_time >= end_time:
        raise ValidationError("end_time must be after start_time")


def slot_windows(open_time, close_time, duration_minutes: int):
    """Whole (start, end) windows between open and close, stepped by duration."""
    if not duration_minutes or duration_minutes <= 0:
        raise ValidationError("slot duration must be a positive number of minutes")

    step = timedelta(minutes=duration_minutes)
    cursor = datetime.combine(date.min, open_time)
    close = datetime.combine(date.min, close_time)

    windows = []
    while cursor + step <= close:
        windows.append((cursor.time(), (cursor + step).time()))
        cursor += step
    return windows


def slot_price(court: Court) -> int:
    # hourly rate prorated to the slot length
    return (court.hourly_rate or 0) * court.slot_duration_minutes // 60


class SlotService:
    def __init__(self, session, connection=None, notifier=None):
        self.session = session
        self.connection = connection
        self.notifier = notifier

    # ---------- lookups ----------

    def get_court(self, court_id) -> Court:
        self._ensure_connection()
        with self._guard("load court"):
            court = self.session.get(Court, court_id)
        if court is None:
            raise NotFoundError("Court not found")
        return court

    def get_slot(self, slot_id) -> TimeSlot:
        self._ensure_connection()
        with self._guard("load slot"):
            slot = self.session.get(TimeSlot, slot_id)
        if slot is None or slot.deleted_at is not None:
            raise NotFoundError("Slot not found")
        return slot

    def find_slot(self, court_id, slot_date, start_time, end_time):
        """The stored slot matching this exact interval, or None."""
        self._ensure_connection()
        stmt = select(TimeSlot).where(
            TimeSlot.court_id == court_id,
            TimeSlot.date == slot_date,
            TimeSlot.start_time == start_time,
            TimeSlot.end_time == end_time,
            TimeSlot.deleted_at.is_(None),
        )
        with self._guard("look up slot"):
            return self.session.execute(stmt).scalars().first()

    def list_slots(self, court_id, start_date, end_date, status=None):
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date")
        if status is not None and status not in SLOT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(SLOT_STATUSES)}")

        self._ensure_connection()
        stmt = select(TimeSlot).where(
            TimeSlot.court_id == court_id,
            TimeSlot.date >= start_date,
            TimeSlot.date <= end_date,
            TimeSlot.deleted_at.is_(None),
        )
        if status:
            stmt = stmt.where(TimeSlot.status == status)
        stmt = stmt.order_by(TimeSlot.date.asc(), TimeSlot.start_time.asc())

        with self._guard("list slots"):
            return list(self.session.execute(stmt).scalars())

    def available_slots(self, court_id, slot_date):
        return [
            s for s in self.list_slots(court_id, slot_date, slot_date, status=SLOT_AVAILABLE)
            if s.current_bookings < s.max_bookings
        ]

    # ---------- generation ----------

    def generate_slots(self, court: Court, start_date, end_date, clear_existing=False, user_id=None):
        """
        Create AVAILABLE slots for every day in [start_date, end_date].

        Windows that already have a slot, or overlap a live one, are skipped. With
        ``clear_existing`` the AVAILABLE, unbooked slots in range are removed
        first; booked and blocked slots always survive.
        """
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date")
        windows = slot_windows(court.open_time, court.close_time, court.slot_duration_minutes)
        if not windows:
            raise ValidationError("Court operating hours yield no slot windows")

        self._ensure_connection()
        price = slot_price(court)
        now = datetime.utcnow()

        with self._guard("generate slots"):
            if clear_existing:
                cleared = self.session.execute(
                    delete(TimeSlot)
                    .where(
                        TimeSlot.court_id == court.id,
                        TimeSlot.date >= start_date,
                        TimeSlot.date <= end_date,
                        TimeSlot.status == SLOT_AVAILABLE,
                        TimeSlot.current_bookings == 0,
                        TimeSlot.booking_id.is_(None),
                    )
                    .execution_options(synchronize_session=False)
                ).rowcount
                logger.info("cleared %s available slots on court %s", cleared, court.id)

            # soft-deleted rows still hold their (court, date, start) key;
            # live rows also block any window that overlaps them
            taken = set()
            live = {}
            for row in self.session.execute(
                select(TimeSlot.date, TimeSlot.start_time, TimeSlot.end_time, TimeSlot.deleted_at).where(
                    TimeSlot.court_id == court.id,
                    TimeSlot.date >= start_date,
                    TimeSlot.date <= end_date,
                )
            ):
                taken.add((row.date, row.start_time))
                if row.deleted_at is None:
                    live.setdefault(row.date, []).append((row.start_time, row.end_time))

            created = []
            day = start_date
            while day <= end_date:
                for start, end in windows:
                    if (day, start) in taken:
                        continue
                    if any(overlaps(start, end, s, e) for s, e in live.get(day, ())):
                        continue
                    slot = TimeSlot.create(court.id, day, start, end, price, created_by=user_id, now=now)
                    self.session.add(slot)
                    created.append(slot)
                day += timedelta(days=1)

            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                raise ConflictError("Slots for this range were generated concurrently, retry")

        logger.info(
            "generated %s slots on court %s for %s..%s",
            len(created), court.id, start_date.isoformat(), end_date.isoformat(),
        )
        return created

    # ---------- conflicts & availability ----------

    def find_conflicts(self, court_id, slot_date, start_time, end_time):
        """Non-available slots on that court/date overlapping [start_time, end_time)."""
        validate_interval(start_time, end_time)
        self._ensure_connection()
        stmt = (
            select(TimeSlot)
            .where(
                TimeSlot.court_id == court_id,
                TimeSlot.date == slot_date,
                TimeSlot.status != SLOT_AVAILABLE,
                TimeSlot.deleted_at.is_(None),
            )
            .order_by(TimeSlot.start_time.asc())
        )
        with self._guard("check conflicts"):
            rows = self.session.execute(stmt).scalars().all()
        return [s for s in rows if overlaps(start_time, end_time, s.start_time, s.end_time)]

    def is_available(self, court_id, slot_date, start_time, end_time) -> bool:
        validate_interval(start_time, end_time)
        slot = self.find_slot(court_id, slot_date, start_time, end_time)
        if slot is None:
            return False
        return slot.status == SLOT_AVAILABLE and slot.current_bookings < slot.max_bookings

    # ---------- reservation ----------

    def reserve(self, slot: TimeSlot, booking_id, user_id=None, commit=True) -> TimeSlot:
        """
        Claim one seat on ``slot`` for ``booking_id``.

        The status only flips to BOOKED once the last seat is taken. Raises
        ConflictError when the slot is no longer available.
        """
        self._ensure_connection()
        stmt = (
            update(TimeSlot)
            .where(
                TimeSlot.id == slot.id,
                TimeSlot.status == SLOT_AVAILABLE,
                TimeSlot.deleted_at.is_(None),
                TimeSlot.current_bookings < TimeSlot.max_bookings,
            )
            .values(
                current_bookings=TimeSlot.current_bookings + 1,
                status=case(
                    (TimeSlot.current_bookings + 1 >= TimeSlot.max_bookings, SLOT_BOOKED),
                    else_=SLOT_AVAILABLE,
                ),
                booking_id=booking_id,
                updated_by=user_id,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        with self._guard("reserve slot"):
            result = self.session.execute(stmt)
            if result.rowcount != 1:
                self.session.rollback()
                logger.info("reservation of slot %s lost: no longer available", slot.id)
                raise ConflictError("Slot is no longer available")

            self.session.refresh(slot)
            self._emit(
                user_id,
                "slot_booked",
                f"Your slot on {slot.date.isoformat()} at {slot.start_time.strftime('%H:%M')} is booked",
                {"slot_id": slot.id, "court_id": slot.court_id, "booking_id": booking_id, "status": slot.status},
            )
            if commit:
                self.session.commit()
        return slot

    def release(self, slot: TimeSlot, user_id=None, commit=True) -> TimeSlot:
        """Give a seat back after a cancellation.

        ``booking_id`` moves to the newest booking still CONFIRMED on the
        slot, or is cleared once no seats are held.
        """
        self._ensure_connection()
        remaining = (
            select(func.max(Booking.id))
            .where(Booking.slot_id == slot.id, Booking.status == BOOKING_CONFIRMED)
            .scalar_subquery()
        )
        stmt = (
            update(TimeSlot)
            .where(TimeSlot.id == slot.id, TimeSlot.current_bookings > 0)
            .values(
                current_bookings=TimeSlot.current_bookings - 1,
                status=case((TimeSlot.status == SLOT_BOOKED, SLOT_AVAILABLE), else_=TimeSlot.status),
                booking_id=case((TimeSlot.current_bookings <= 1, null()), else_=remaining),
                updated_by=user_id,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        with self._guard("release slot"):
            if self.session.execute(stmt).rowcount != 1:
                logger.warning("release of slot %s ignored: no bookings held", slot.id)
            self.session.refresh(slot)
            if commit:
                self.session.commit()
        return slot

    # ---------- administrative blocking ----------

    def set_status(self, court_id, slot_ids, status, reason=None, user_id=None) -> int:
        """
        Move slots between AVAILABLE and BLOCKED/MAINTENANCE.

        Booked or partially booked slots are never touched. Returns the
        number of slots changed.
        """
        if status == SLOT_BOOKED:
            raise ValidationError("Slots can only become BOOKED through a reservation")
        if status not in SLOT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(SLOT_STATUSES)}")
        if not slot_ids:
            raise ValidationError("slot_ids must be a non-empty list")

        court = self.get_court(court_id)
        now = datetime.utcnow()

        stmt = update(TimeSlot).where(
            TimeSlot.id.in_(slot_ids),
            TimeSlot.court_id == court.id,
            TimeSlot.deleted_at.is_(None),
        )
        if status in BLOCK_STATUSES:
            stmt = stmt.where(
                TimeSlot.status == SLOT_AVAILABLE,
                TimeSlot.current_bookings == 0,
            ).values(status=status, block_reason=reason, updated_by=user_id, updated_at=now)
        else:
            stmt = stmt.where(TimeSlot.status.in_(BLOCK_STATUSES)).values(
                status=SLOT_AVAILABLE, block_reason=None, updated_by=user_id, updated_at=now,
            )

        with self._guard("update slot status"):
            count = self.session.execute(stmt.execution_options(synchronize_session=False)).rowcount
            if count and status in BLOCK_STATUSES:
                self._notify_blocked(court, count, status, reason)
            self.session.commit()

        logger.info("set %s slots on court %s to %s", count, court.id, status)
        return count

    def block_interval(self, court_id, slot_date, start_time, end_time, status="BLOCKED", reason=None, user_id=None) -> int:
        """
        Block every free slot overlapping [start_time, end_time) on that day.

        Refuses with ConflictError, before writing anything, if a booked slot
        sits inside the interval.
        """
        if status not in BLOCK_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(BLOCK_STATUSES)}")
        validate_interval(start_time, end_time)
        court = self.get_court(court_id)

        booked = [s for s in self.find_conflicts(court.id, slot_date, start_time, end_time) if s.status == SLOT_BOOKED]
        free = [
            s for s in self.list_slots(court.id, slot_date, slot_date, status=SLOT_AVAILABLE)
            if overlaps(start_time, end_time, s.start_time, s.end_time)
        ]
        booked.extend(s for s in free if s.current_bookings > 0)
        if booked:
            raise ConflictError("Interval overlaps booked slots", conflicts=booked)

        ids = [s.id for s in free]
        if not ids:
            return 0
        return self.set_status(court.id, ids, status, reason=reason, user_id=user_id)

    # ---------- retention ----------

    def delete_old_slots(self, days_to_keep=DEFAULT_RETENTION_DAYS, today=None) -> int:
        """
        Soft-delete slots dated before ``today - days_to_keep``.

        Slots that still carry a booking reference or hold bookings are kept.
        Returns the number of slots deleted.
        """
        if days_to_keep is None or days_to_keep < 0:
            raise ValidationError("days_to_keep must be zero or more")

        self._ensure_connection()
        cutoff = (today or date.today()) - timedelta(days=days_to_keep)
        now = datetime.utcnow()
        stmt = (
            update(TimeSlot)
            .where(
                TimeSlot.date < cutoff,
                TimeSlot.deleted_at.is_(None),
                TimeSlot.booking_id.is_(None),
                TimeSlot.current_bookings == 0,
            )
            .values(deleted_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        with self._guard("delete old slots"):
            count = self.session.execute(stmt).rowcount
            self.session.commit()

        logger.info("retention: soft-deleted %s slots dated before %s", count, cutoff.isoformat())
        return count

    # ---------- internals ----------

    def _ensure_connection(self):
        if self.connection is not None:
            self.connection.get()

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("could not %s: %s", action, exc)
            raise PersistenceError(f"Could not {action}") from exc

    def _emit(self, user_id, type, message, data):
        if self.notifier is not None:
            self.notifier.emit(user_id, type, message, data)

    def _notify_blocked(self, court, count, status, reason):
        owner_id = court.venue.owner_user_id if court.venue else None
        self._emit(
            owner_id,
            "slot_blocked",
            f"{count} slot(s) on {court.name} set to {status}",
            {"court_id": court.id, "count": count, "status": status, "reason": reason},
        )
