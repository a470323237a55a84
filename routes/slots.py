from flask import Blueprint, request, jsonify, g, current_app

from security.rbac import can_manage_venue, require_roles
from services.deps import slot_service
from utils.auth_context import login_required
from utils.audit import log_event
from utils.parsing import parse_date, parse_time

slots_bp = Blueprint("slots", __name__, url_prefix="/courts")


def _managed_court(service, court_id: int):
    court = service.get_court(court_id)
    if not can_manage_venue(court.venue):
        return None
    return court


def _interval_args(source):
    """(date, start_time, end_time) from query args or a JSON body; raises ValueError."""
    return (
        parse_date(source.get("date")),
        parse_time(source.get("start_time")),
        parse_time(source.get("end_time")),
    )


# ---------- ADMIN (owner): slot calendar ----------
@slots_bp.get("/<int:court_id>/slots")
@require_roles("ADMIN")
def list_slots(court_id: int):
    service = slot_service()
    if not _managed_court(service, court_id):
        return jsonify(error="Unauthorized to access this court's slots"), 403

    try:
        start_date = parse_date(request.args.get("start_date"))
        end_date = parse_date(request.args.get("end_date"))
    except ValueError:
        return jsonify(error="start_date and end_date are required (YYYY-MM-DD)"), 400

    status = (request.args.get("status") or "").strip().upper() or None
    slots = service.list_slots(court_id, start_date, end_date, status=status)
    return jsonify(slots=[s.to_dict() for s in slots]), 200


@slots_bp.post("/<int:court_id>/slots")
@require_roles("ADMIN")
def generate_slots(court_id: int):
    service = slot_service()
    court = _managed_court(service, court_id)
    if not court:
        return jsonify(error="Unauthorized to manage this court's slots"), 403

    data = request.get_json(silent=True) or {}
    try:
        start_date = parse_date(data.get("start_date"))
        end_date = parse_date(data.get("end_date"))
    except ValueError:
        return jsonify(error="start_date and end_date are required (YYYY-MM-DD)"), 400

    max_days = current_app.config.get("MAX_GENERATION_DAYS", 90)
    if (end_date - start_date).days + 1 > max_days:
        return jsonify(error=f"Cannot generate more than {max_days} days at once"), 400

    clear_existing = data.get("clear_existing", False)
    if not isinstance(clear_existing, bool):
        return jsonify(error="clear_existing must be true or false"), 400
    created = service.generate_slots(
        court, start_date, end_date, clear_existing=clear_existing, user_id=g.user.id,
    )

    log_event(
        "SLOTS_GENERATE",
        user_id=g.user.id,
        entity="court",
        entity_id=court_id,
        metadata={
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "clear_existing": clear_existing,
            "created": len(created),
        },
    )
    return jsonify(
        message=f"Generated {len(created)} slots",
        count=len(created),
        slots=[s.to_dict() for s in created],
    ), 201


@slots_bp.patch("/<int:court_id>/slots")
@require_roles("ADMIN")
def update_slot_status(court_id: int):
    service = slot_service()
    if not _managed_court(service, court_id):
        return jsonify(error="Unauthorized to update this court's slots"), 403

    data = request.get_json(silent=True) or {}
    slot_ids = data.get("slot_ids")
    status = (data.get("status") or "").strip().upper()
    reason = (data.get("reason") or "").strip() or None

    if not isinstance(slot_ids, list) or not slot_ids or not status:
        return jsonify(error="slot_ids array and status are required"), 400
    if not all(isinstance(i, int) and not isinstance(i, bool) for i in slot_ids):
        return jsonify(error="slot_ids must be integers"), 400

    count = service.set_status(court_id, slot_ids, status, reason=reason, user_id=g.user.id)

    log_event(
        "SLOTS_STATUS_UPDATE",
        user_id=g.user.id,
        entity="court",
        entity_id=court_id,
        metadata={"status": status, "requested": len(slot_ids), "modified": count, "reason": reason},
    )
    return jsonify(message=f"Updated {count} slots", modified_count=count), 200


@slots_bp.post("/<int:court_id>/slots/block")
@require_roles("ADMIN")
def block_interval(court_id: int):
    service = slot_service()
    if not _managed_court(service, court_id):
        return jsonify(error="Unauthorized to update this court's slots"), 403

    data = request.get_json(silent=True) or {}
    try:
        slot_date, start_time, end_time = _interval_args(data)
    except ValueError:
        return jsonify(error="date (YYYY-MM-DD), start_time and end_time (HH:MM) are required"), 400

    status = (data.get("status") or "BLOCKED").strip().upper()
    reason = (data.get("reason") or "").strip() or None
    count = service.block_interval(
        court_id, slot_date, start_time, end_time, status=status, reason=reason, user_id=g.user.id,
    )

    log_event(
        "SLOTS_BLOCK",
        user_id=g.user.id,
        entity="court",
        entity_id=court_id,
        metadata={
            "date": slot_date.isoformat(),
            "start_time": start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "status": status,
            "modified": count,
        },
    )
    return jsonify(message=f"Blocked {count} slots", modified_count=count), 200


# ---------- PLAYERS: availability ----------
@slots_bp.get("/<int:court_id>/conflicts")
@login_required
def conflicts(court_id: int):
    try:
        slot_date, start_time, end_time = _interval_args(request.args)
    except ValueError:
        return jsonify(error="date (YYYY-MM-DD), start_time and end_time (HH:MM) are required"), 400

    service = slot_service()
    service.get_court(court_id)
    rows = service.find_conflicts(court_id, slot_date, start_time, end_time)
    return jsonify(conflicts=[s.to_dict() for s in rows], has_conflict=bool(rows)), 200


@slots_bp.get("/<int:court_id>/availability")
@login_required
def availability(court_id: int):
    try:
        slot_date, start_time, end_time = _interval_args(request.args)
    except ValueError:
        return jsonify(error="date (YYYY-MM-DD), start_time and end_time (HH:MM) are required"), 400

    service = slot_service()
    service.get_court(court_id)
    return jsonify(available=service.is_available(court_id, slot_date, start_time, end_time)), 200


@slots_bp.get("/<int:court_id>/available-slots")
def available_slots(court_id: int):
    try:
        slot_date = parse_date(request.args.get("date"))
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    service = slot_service()
    court = service.get_court(court_id)
    slots = service.available_slots(court.id, slot_date)
    return jsonify(court=court.to_dict(), date=slot_date.isoformat(), slots=[s.to_dict() for s in slots]), 200
