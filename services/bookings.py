import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from models.booking import Booking, BOOKING_CONFIRMED, BOOKING_CANCELLED
from models.match import Match, MATCH_OPEN, MATCH_FULL, MATCH_CANCELLED
from models.slot import SLOT_AVAILABLE
from services.errors import ConflictError, NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)


class BookingService:
    """Bookings and matches on top of the slot calendar.

    A booking row and the reservation of its slot commit together; if the
    reservation loses a race both are rolled back.
    """

    def __init__(self, slots, notifier=None, cancel_cutoff_hours=12):
        self.slots = slots
        self.session = slots.session
        self.notifier = notifier
        self.cancel_cutoff_hours = cancel_cutoff_hours

    def resolve_slot(self, slot_id=None, court_id=None, slot_date=None, start_time=None, end_time=None):
        if slot_id is not None:
            return self.slots.get_slot(slot_id)

        if court_id is None or slot_date is None:
            raise ValidationError("slot_id, or court_id with date, start_time and end_time, is required")
        self.slots.get_court(court_id)

        conflicts = self.slots.find_conflicts(court_id, slot_date, start_time, end_time)
        if conflicts:
            raise ConflictError("Requested time overlaps unavailable slots", conflicts=conflicts)

        slot = self.slots.find_slot(court_id, slot_date, start_time, end_time)
        if slot is None:
            raise NotFoundError("No slot is scheduled for that time")
        return slot

    def create_booking(self, user, notes=None, now=None, **slot_query) -> Booking:
        slot = self.resolve_slot(**slot_query)
        now = now or datetime.utcnow()

        if datetime.combine(slot.date, slot.start_time) <= now:
            raise ValidationError("Cannot book past/started slots")
        if slot.status != SLOT_AVAILABLE:
            # early answer only; reserve() is what decides
            raise ConflictError("Slot is no longer available", conflicts=[slot])

        booking = Booking(
            user_id=user.id,
            court_id=slot.court_id,
            slot_id=slot.id,
            status=BOOKING_CONFIRMED,
            total_price=slot.price,
            notes=notes,
            created_at=now,
        )
        try:
            self.session.add(booking)
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError("Could not create booking") from exc

        self.slots.reserve(slot, booking.id, user_id=user.id)
        logger.info("booking %s confirmed on slot %s for user %s", booking.id, slot.id, user.id)
        return booking

    def cancel_booking(self, booking: Booking, acting_user, reason=None, enforce_cutoff=True, now=None) -> Booking:
        if booking.status != BOOKING_CONFIRMED:
            raise ValidationError("Booking not cancellable")

        now = now or datetime.utcnow()
        slot = self.slots.get_slot(booking.slot_id)
        if enforce_cutoff:
            starts_at = datetime.combine(slot.date, slot.start_time)
            if (starts_at - now).total_seconds() < self.cancel_cutoff_hours * 3600:
                raise ValidationError(
                    f"Cancellation not allowed within {self.cancel_cutoff_hours} hours of start",
                    cutoff_hours=self.cancel_cutoff_hours,
                )

        # only a CONFIRMED row is claimed; a stale copy loses here
        stmt = (
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == BOOKING_CONFIRMED)
            .values(status=BOOKING_CANCELLED, cancelled_at=now, cancel_reason=reason)
            .execution_options(synchronize_session=False)
        )
        try:
            claimed = self.session.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError("Could not cancel booking") from exc
        if claimed != 1:
            self.session.rollback()
            logger.info("cancel of booking %s lost: already cancelled", booking.id)
            raise ConflictError("Booking was already cancelled")
        self.session.refresh(booking)

        match = self.session.query(Match).filter_by(booking_id=booking.id).first()
        if match is not None:
            match.status = MATCH_CANCELLED
            for player in match.participants:
                if player.id != booking.user_id:
                    self._emit(player.id, "match_cancelled", "A match you joined was cancelled", {"match_id": match.id})

        if acting_user.id != booking.user_id:
            self._emit(
                booking.user_id,
                "booking_cancelled",
                "Your booking was cancelled by the venue",
                {"booking_id": booking.id, "reason": reason},
            )

        self.slots.release(slot, user_id=acting_user.id)
        logger.info("booking %s cancelled by user %s", booking.id, acting_user.id)
        return booking

    # ---------- matches ----------

    def create_match(self, host, slot_id, sport_id=None, max_players=2, description=None, now=None) -> Match:
        if not isinstance(max_players, int) or max_players < 2:
            raise ValidationError("max_players must be at least 2")

        booking = self.create_booking(host, slot_id=slot_id, now=now)
        match = Match(
            host_user_id=host.id,
            sport_id=sport_id,
            booking_id=booking.id,
            max_players=max_players,
            description=description,
            status=MATCH_OPEN,
        )
        match.participants.append(host)
        self.session.add(match)
        self._commit("create match")
        return match

    def join_match(self, match: Match, user) -> Match:
        if match.status != MATCH_OPEN:
            raise ConflictError("Match is not open for new players")
        if any(p.id == user.id for p in match.participants):
            raise ValidationError("Already joined this match")
        if len(match.participants) >= match.max_players:
            raise ConflictError("Match is full")

        match.participants.append(user)
        if len(match.participants) >= match.max_players:
            match.status = MATCH_FULL

        self._emit(
            match.host_user_id,
            "match_joined",
            f"{user.full_name or user.email} joined your match",
            {"match_id": match.id, "user_id": user.id},
        )
        self._commit("join match")
        return match

    def _emit(self, user_id, type, message, data):
        if self.notifier is not None:
            self.notifier.emit(user_id, type, message, data)

    def _commit(self, action):
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(f"Could not {action}") from exc
