from datetime import datetime, time
from models.db import db

COURT_ACTIVE = "ACTIVE"
COURT_MAINTENANCE = "MAINTENANCE"
COURT_INACTIVE = "INACTIVE"

class Court(db.Model):
    __tablename__ = "courts"

    id = db.Column(db.Integer, primary_key=True)
    venue_id = db.Column(db.Integer, db.ForeignKey("venues.id"), nullable=False, index=True)
    sport_id = db.Column(db.Integer, db.ForeignKey("sports.id"), nullable=True)

    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    surface_type = db.Column(db.String(60), nullable=True)
    indoor = db.Column(db.Boolean, default=False, nullable=False)

    hourly_rate = db.Column(db.Integer, nullable=False, default=0)  # smallest currency unit
    open_time = db.Column(db.Time, nullable=False, default=time(6, 0))
    close_time = db.Column(db.Time, nullable=False, default=time(22, 0))
    slot_duration_minutes = db.Column(db.Integer, nullable=False, default=60)

    status = db.Column(db.String(20), nullable=False, default=COURT_ACTIVE)
    maintenance_notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    venue = db.relationship("Venue", back_populates="courts")
    sport = db.relationship("Sport")

    __table_args__ = (
        db.UniqueConstraint("venue_id", "name", name="uq_venue_court_name"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "venue_id": self.venue_id,
            "sport_id": self.sport_id,
            "name": self.name,
            "description": self.description,
            "surface_type": self.surface_type,
            "indoor": self.indoor,
            "hourly_rate": self.hourly_rate,
            "open_time": self.open_time.strftime("%H:%M"),
            "close_time": self.close_time.strftime("%H:%M"),
            "slot_duration_minutes": self.slot_duration_minutes,
            "status": self.status,
        }
