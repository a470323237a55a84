import json
from datetime import datetime
from models.db import db

class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)  # recipient

    type = db.Column(db.String(60), nullable=False)  # e.g. slot_booked, match_joined
    message = db.Column(db.String(255), nullable=False)
    data_json = db.Column(db.Text, nullable=True)
    read = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "data": json.loads(self.data_json) if self.data_json else None,
            "read": self.read,
            "created_at": self.created_at.isoformat(),
        }
