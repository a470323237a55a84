from datetime import datetime
from models.db import db

MATCH_OPEN = "OPEN"
MATCH_FULL = "FULL"
MATCH_CANCELLED = "CANCELLED"

match_participants = db.Table(
    "match_participants",
    db.Column("match_id", db.Integer, db.ForeignKey("matches.id"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
)

class Match(db.Model):
    __tablename__ = "matches"

    id = db.Column(db.Integer, primary_key=True)
    host_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    sport_id = db.Column(db.Integer, db.ForeignKey("sports.id"), nullable=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True)

    max_players = db.Column(db.Integer, nullable=False, default=2)
    description = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=MATCH_OPEN, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    booking = db.relationship("Booking")
    participants = db.relationship("User", secondary=match_participants)

    def to_dict(self):
        return {
            "id": self.id,
            "host_user_id": self.host_user_id,
            "sport_id": self.sport_id,
            "booking_id": self.booking_id,
            "slot_id": self.booking.slot_id if self.booking else None,
            "court_id": self.booking.court_id if self.booking else None,
            "max_players": self.max_players,
            "players": [u.id for u in self.participants],
            "description": self.description,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }
