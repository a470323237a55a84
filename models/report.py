from datetime import datetime
from models.db import db

REPORT_TARGET_USER = "USER"
REPORT_TARGET_VENUE = "VENUE"

REPORT_OPEN = "OPEN"
REPORT_RESOLVED = "RESOLVED"
REPORT_DISMISSED = "DISMISSED"

class Report(db.Model):
    __tablename__ = "reports"

    id = db.Column(db.Integer, primary_key=True)
    reporter_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    target_type = db.Column(db.String(20), nullable=False)  # USER, VENUE
    target_id = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=REPORT_OPEN, index=True)
    resolved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)
    resolution_note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "reporter_id": self.reporter_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "reason": self.reason,
            "description": self.description,
            "status": self.status,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolution_note": self.resolution_note,
            "created_at": self.created_at.isoformat(),
        }
