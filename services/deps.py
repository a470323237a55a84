from flask import current_app

from models import db
from services.bookings import BookingService
from services.notifications import Notifier
from services.slots import SlotService


def connection_cache():
    return current_app.extensions["connection_cache"]


def slot_service() -> SlotService:
    return SlotService(db.session, connection=connection_cache(), notifier=Notifier(db.session))


def booking_service() -> BookingService:
    return BookingService(
        slot_service(),
        notifier=Notifier(db.session),
        cancel_cutoff_hours=current_app.config.get("CANCEL_CUTOFF_HOURS", 12),
    )
