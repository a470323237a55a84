from flask import Blueprint, request, jsonify, g

from models import db
from models.notification import Notification
from utils.auth_context import login_required

notifications_bp = Blueprint("notifications", __name__, url_prefix="/notifications")


@notifications_bp.get("")
@login_required
def list_notifications():
    q = Notification.query.filter_by(user_id=g.user.id)
    if request.args.get("unread") in ("1", "true"):
        q = q.filter_by(read=False)

    limit = request.args.get("limit", type=int) or 50
    limit = max(1, min(limit, 200))

    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    unread = Notification.query.filter_by(user_id=g.user.id, read=False).count()
    return jsonify(notifications=[n.to_dict() for n in rows], unread=unread), 200


@notifications_bp.post("/<int:notification_id>/read")
@login_required
def mark_read(notification_id: int):
    row = db.session.get(Notification, notification_id)
    if not row or row.user_id != g.user.id:
        return jsonify(error="Notification not found"), 404
    row.read = True
    db.session.commit()
    return jsonify(message="Marked as read"), 200


@notifications_bp.post("/read-all")
@login_required
def mark_all_read():
    count = (
        Notification.query
        .filter_by(user_id=g.user.id, read=False)
        .update({"read": True}, synchronize_session=False)
    )
    db.session.commit()
    return jsonify(message="Marked as read", updated=count), 200
