from datetime import datetime, date
from flask import Blueprint, jsonify, g, request, current_app

from models import db
from models.audit_log import AuditLog
from models.booking import Booking
from models.court import Court
from models.report import Report, REPORT_OPEN, REPORT_RESOLVED, REPORT_DISMISSED
from models.slot import TimeSlot
from models.user import User, Role
from models.venue import Venue, VENUE_APPROVED, VENUE_PENDING, VENUE_REJECTED
from security.rbac import ADMIN, SUPER_ADMIN, require_roles
from security.session import revoke_all_sessions
from services.deps import slot_service
from services.notifications import Notifier
from utils.audit import log_event
from utils.parsing import parse_int

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _user_row(u: User):
    return {
        "id": u.id,
        "email": u.email,
        "full_name": u.full_name,
        "roles": sorted(u.role_names),
        "is_banned": u.is_banned,
        "ban_reason": u.ban_reason,
        "created_at": u.created_at.isoformat(),
    }


# ---------- ADMIN (owner): my venues ----------
@admin_bp.get("/owner/dashboard")
@require_roles(ADMIN)
def owner_dashboard():
    venues = Venue.query.filter_by(owner_user_id=g.user.id).order_by(Venue.created_at.desc()).all()
    venue_ids = [v.id for v in venues]
    court_ids = [c.id for c in Court.query.filter(Court.venue_id.in_(venue_ids)).all()] if venue_ids else []

    slot_count = (
        TimeSlot.query.filter(TimeSlot.court_id.in_(court_ids), TimeSlot.deleted_at.is_(None)).count()
        if court_ids else 0
    )
    booking_count = Booking.query.filter(Booking.court_id.in_(court_ids)).count() if court_ids else 0

    log_event("ADMIN_OWNER_DASHBOARD_VIEW", user_id=g.user.id)
    return jsonify(
        venues=[v.to_dict() for v in venues],
        stats={
            "venues": len(venues),
            "courts": len(court_ids),
            "slots": slot_count,
            "bookings": booking_count,
        },
    ), 200


# ---------- SUPER_ADMIN: platform ----------
@admin_bp.get("/dashboard")
@require_roles(SUPER_ADMIN)
def dashboard():
    log_event("SUPER_ADMIN_DASHBOARD_VIEW", user_id=g.user.id)
    return jsonify(
        users=User.query.count(),
        banned_users=User.query.filter_by(is_banned=True).count(),
        pending_venues=Venue.query.filter_by(status=VENUE_PENDING).count(),
        approved_venues=Venue.query.filter_by(status=VENUE_APPROVED).count(),
        bookings=Booking.query.count(),
        open_reports=Report.query.filter_by(status=REPORT_OPEN).count(),
    ), 200


@admin_bp.get("/venues")
@require_roles(SUPER_ADMIN)
def list_venues():
    status = (request.args.get("status") or VENUE_PENDING).strip().upper()
    q = Venue.query
    if status != "ALL":
        q = q.filter(Venue.status == status)

    rows = q.order_by(Venue.created_at.desc()).limit(200).all()
    return jsonify([v.to_dict() for v in rows]), 200


@admin_bp.post("/venues/<int:venue_id>/review")
@require_roles(SUPER_ADMIN)
def review_venue(venue_id: int):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").strip().upper()
    reason = (data.get("reason") or "").strip() or None

    if status not in (VENUE_APPROVED, VENUE_REJECTED):
        return jsonify(error="status must be APPROVED or REJECTED"), 400

    venue = db.session.get(Venue, venue_id)
    if not venue:
        return jsonify(error="Venue not found"), 404

    venue.status = status
    venue.reviewed_by = g.user.id
    venue.reviewed_at = datetime.utcnow()
    venue.rejected_reason = reason if status == VENUE_REJECTED else None

    owner = db.session.get(User, venue.owner_user_id)
    if owner and status == VENUE_APPROVED and ADMIN not in owner.role_names:
        admin_role = Role.query.filter_by(name=ADMIN).first()
        if not admin_role:
            admin_role = Role(name=ADMIN)
            db.session.add(admin_role)
            db.session.flush()
        owner.roles.append(admin_role)

    if owner:
        message = (
            f"Your venue '{venue.name}' has been approved"
            if status == VENUE_APPROVED
            else f"Your venue '{venue.name}' was rejected"
        )
        Notifier(db.session).emit(
            owner.id, "venue_reviewed", message, {"venue_id": venue.id, "status": status, "reason": reason},
        )

    db.session.commit()

    log_event(
        "SUPER_ADMIN_VENUE_REVIEW",
        user_id=g.user.id,
        entity="venue",
        entity_id=venue.id,
        metadata={"status": status, "reason": reason},
    )
    return jsonify(message="Venue updated", status=status), 200


@admin_bp.get("/users")
@require_roles(SUPER_ADMIN)
def list_users():
    role_filter = (request.args.get("role") or "").strip().upper()
    q = User.query
    if role_filter:
        q = q.join(User.roles).filter(Role.name == role_filter)
    if request.args.get("banned") in ("1", "true"):
        q = q.filter(User.is_banned.is_(True))

    users = q.order_by(User.created_at.desc()).limit(200).all()
    return jsonify([_user_row(u) for u in users]), 200


@admin_bp.post("/users/<int:user_id>/ban")
@require_roles(SUPER_ADMIN)
def ban_user(user_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:255] or None

    user = db.session.get(User, user_id)
    if not user:
        return jsonify(error="User not found"), 404
    if user.id == g.user.id:
        return jsonify(error="Cannot ban yourself"), 403
    if SUPER_ADMIN in user.role_names:
        return jsonify(error="Cannot ban a SUPER_ADMIN"), 403

    user.is_banned = True
    user.banned_at = datetime.utcnow()
    user.ban_reason = reason
    db.session.commit()
    revoked = revoke_all_sessions(user.id)

    log_event("SUPER_ADMIN_USER_BAN", user_id=g.user.id, entity="user", entity_id=user.id,
              metadata={"reason": reason, "revoked_sessions": revoked})
    return jsonify(message="User banned"), 200


@admin_bp.post("/users/<int:user_id>/unban")
@require_roles(SUPER_ADMIN)
def unban_user(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify(error="User not found"), 404

    user.is_banned = False
    user.banned_at = None
    user.ban_reason = None
    db.session.commit()

    log_event("SUPER_ADMIN_USER_UNBAN", user_id=g.user.id, entity="user", entity_id=user.id)
    return jsonify(message="User unbanned"), 200


@admin_bp.get("/reports")
@require_roles(SUPER_ADMIN)
def list_reports():
    status = (request.args.get("status") or REPORT_OPEN).strip().upper()
    q = Report.query
    if status != "ALL":
        q = q.filter(Report.status == status)
    target_type = (request.args.get("target_type") or "").strip().upper()
    if target_type:
        q = q.filter(Report.target_type == target_type)

    rows = q.order_by(Report.created_at.desc()).limit(200).all()
    return jsonify([r.to_dict() for r in rows]), 200


@admin_bp.post("/reports/<int:report_id>/resolve")
@require_roles(SUPER_ADMIN)
def resolve_report(report_id: int):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or REPORT_RESOLVED).strip().upper()
    note = (data.get("note") or "").strip()[:255] or None

    if status not in (REPORT_RESOLVED, REPORT_DISMISSED):
        return jsonify(error="status must be RESOLVED or DISMISSED"), 400

    report = db.session.get(Report, report_id)
    if not report:
        return jsonify(error="Report not found"), 404
    if report.status != REPORT_OPEN:
        return jsonify(error="Report already closed"), 409

    report.status = status
    report.resolved_by = g.user.id
    report.resolved_at = datetime.utcnow()
    report.resolution_note = note

    Notifier(db.session).emit(
        report.reporter_id,
        "report_" + status.lower(),
        f"Your report was {status.lower()}",
        {"report_id": report.id, "note": note},
    )
    db.session.commit()

    log_event("SUPER_ADMIN_REPORT_RESOLVE", user_id=g.user.id, entity="report", entity_id=report.id,
              metadata={"status": status})
    return jsonify(report.to_dict()), 200


@admin_bp.post("/slots/purge")
@require_roles(SUPER_ADMIN)
def purge_slots():
    data = request.get_json(silent=True) or {}
    try:
        days = parse_int(data.get("days_to_keep"), current_app.config.get("SLOT_RETENTION_DAYS", 30))
    except (TypeError, ValueError):
        return jsonify(error="days_to_keep must be an integer"), 400

    count = slot_service().delete_old_slots(days, today=date.today())

    log_event("SLOTS_PURGE", user_id=g.user.id, metadata={"deleted": count, "days_to_keep": days})
    return jsonify(message=f"Deleted {count} slots", deleted=count), 200


@admin_bp.get("/audit-logs")
@require_roles(SUPER_ADMIN)
def list_audit_logs():
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))

    q = AuditLog.query
    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action == action)
    user_id = request.args.get("user_id", type=int)
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([r.to_dict() for r in rows]), 200
