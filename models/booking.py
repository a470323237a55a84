from datetime import datetime
from models.db import db

BOOKING_CONFIRMED = "CONFIRMED"
BOOKING_CANCELLED = "CANCELLED"
BOOKING_COMPLETED = "COMPLETED"

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)
    slot_id = db.Column(db.Integer, db.ForeignKey("time_slots.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default=BOOKING_CONFIRMED)
    # status values: CONFIRMED, CANCELLED, COMPLETED
    total_price = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)

    def to_dict(self, slot=None):
        out = {
            "id": self.id,
            "user_id": self.user_id,
            "court_id": self.court_id,
            "slot_id": self.slot_id,
            "status": self.status,
            "total_price": self.total_price,
            "created_at": self.created_at.isoformat(),
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
        }
        if slot is not None:
            out["slot"] = slot.to_dict()
        return out
