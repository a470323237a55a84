import json
from datetime import datetime
from models.db import db

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)  # nullable for unauth events and CLI jobs
    action = db.Column(db.String(80), nullable=False)  # e.g. SLOTS_GENERATE, BOOKING_CREATE
    entity = db.Column(db.String(80), nullable=True)   # e.g. slot, booking, venue
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "created_at": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "metadata": json.loads(self.metadata_json) if self.metadata_json else None,
        }
