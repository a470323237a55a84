from flask import Blueprint, request, jsonify, g

from models import db
from models.report import Report, REPORT_OPEN, REPORT_TARGET_USER, REPORT_TARGET_VENUE
from models.user import User
from models.venue import Venue
from utils.auth_context import login_required
from utils.audit import log_event
from utils.parsing import parse_int

reports_bp = Blueprint("reports", __name__, url_prefix="/reports")

TARGET_MODELS = {
    REPORT_TARGET_USER: User,
    REPORT_TARGET_VENUE: Venue,
}


@reports_bp.post("")
@login_required
def create_report():
    data = request.get_json(silent=True) or {}
    target_type = (data.get("target_type") or "").strip().upper()
    reason = (data.get("reason") or "").strip()
    description = (data.get("description") or "").strip() or None

    if target_type not in TARGET_MODELS:
        return jsonify(error="target_type must be USER or VENUE"), 400
    if not reason:
        return jsonify(error="reason is required"), 400
    try:
        target_id = parse_int(data.get("target_id"))
    except (TypeError, ValueError):
        target_id = None
    if target_id is None:
        return jsonify(error="target_id is required"), 400

    if db.session.get(TARGET_MODELS[target_type], target_id) is None:
        return jsonify(error="Reported target not found"), 404
    if target_type == REPORT_TARGET_USER and target_id == g.user.id:
        return jsonify(error="Cannot report yourself"), 400

    report = Report(
        reporter_id=g.user.id,
        target_type=target_type,
        target_id=target_id,
        reason=reason[:120],
        description=description,
        status=REPORT_OPEN,
    )
    db.session.add(report)
    db.session.commit()

    log_event("REPORT_CREATE", user_id=g.user.id, entity="report", entity_id=report.id,
              metadata={"target_type": target_type, "target_id": target_id})
    return jsonify(id=report.id, status=report.status), 201


@reports_bp.get("/me")
@login_required
def my_reports():
    rows = Report.query.filter_by(reporter_id=g.user.id).order_by(Report.created_at.desc()).all()
    return jsonify([r.to_dict() for r in rows]), 200
