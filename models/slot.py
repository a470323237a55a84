from datetime import datetime
from models.db import db

SLOT_AVAILABLE = "AVAILABLE"
SLOT_BOOKED = "BOOKED"
SLOT_BLOCKED = "BLOCKED"
SLOT_MAINTENANCE = "MAINTENANCE"

SLOT_STATUSES = (SLOT_AVAILABLE, SLOT_BOOKED, SLOT_BLOCKED, SLOT_MAINTENANCE)
BLOCK_STATUSES = (SLOT_BLOCKED, SLOT_MAINTENANCE)

class TimeSlot(db.Model):
    __tablename__ = "time_slots"

    id = db.Column(db.Integer, primary_key=True)

    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=SLOT_AVAILABLE, index=True)
    price = db.Column(db.Integer, nullable=False, default=0)  # smallest currency unit

    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id", use_alter=True, name="fk_time_slots_booking_id"), nullable=True)
    block_reason = db.Column(db.String(255), nullable=True)
    label = db.Column(db.String(80), nullable=True)

    max_bookings = db.Column(db.Integer, nullable=False, default=1)
    current_bookings = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    deleted_at = db.Column(db.DateTime, nullable=True)

    # set explicitly by TimeSlot.create and by every update statement in services.slots
    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)

    __table_args__ = (
        # one slot per court per start time on a given day
        db.UniqueConstraint("court_id", "date", "start_time", name="uq_court_date_start"),
        db.CheckConstraint("start_time < end_time", name="ck_slot_interval"),
        db.CheckConstraint("current_bookings <= max_bookings", name="ck_slot_capacity"),
        db.Index("ix_time_slots_court_date_status", "court_id", "date", "status"),
    )

    @classmethod
    def create(cls, court_id, slot_date, start_time, end_time, price, created_by=None, max_bookings=1, now=None):
        now = now or datetime.utcnow()
        return cls(
            court_id=court_id,
            date=slot_date,
            start_time=start_time,
            end_time=end_time,
            status=SLOT_AVAILABLE,
            price=price,
            max_bookings=max_bookings,
            current_bookings=0,
            created_by=created_by,
            updated_by=created_by,
            created_at=now,
            updated_at=now,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "court_id": self.court_id,
            "date": self.date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "status": self.status,
            "price": self.price,
            "booking_id": self.booking_id,
            "block_reason": self.block_reason,
            "label": self.label,
            "max_bookings": self.max_bookings,
            "current_bookings": self.current_bookings,
        }
