from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy.exc import IntegrityError

from models import db
from models.court import Court
from models.sport import Sport
from models.venue import Venue, VENUE_APPROVED, VENUE_PENDING
from security.rbac import can_manage_venue, require_roles
from services.slots import slot_windows
from services.errors import ValidationError
from utils.auth_context import login_required
from utils.audit import log_event
from utils.parsing import parse_int, parse_time

venues_bp = Blueprint("venues", __name__, url_prefix="/venues")


@venues_bp.post("")
@login_required
def register_venue():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    location = (data.get("location") or "").strip()
    description = (data.get("description") or "").strip() or None

    if not name or not location:
        return jsonify(error="name and location are required"), 400

    duplicate = (
        Venue.query
        .filter(db.func.lower(Venue.name) == name.lower(), db.func.lower(Venue.location) == location.lower())
        .first()
    )
    if duplicate:
        return jsonify(error="Venue already exists"), 409

    venue = Venue(
        name=name,
        location=location,
        description=description,
        owner_user_id=g.user.id,
        status=VENUE_PENDING,
    )
    db.session.add(venue)
    db.session.commit()

    log_event("VENUE_REGISTER_SUBMIT", user_id=g.user.id, entity="venue", entity_id=venue.id)
    return jsonify(id=venue.id, status=venue.status), 201


@venues_bp.get("")
def list_venues():
    name_query = (request.args.get("name") or "").strip()
    location_query = (request.args.get("location") or "").strip()

    q = Venue.query.filter(Venue.status == VENUE_APPROVED)
    if name_query:
        q = q.filter(Venue.name.ilike(f"%{name_query}%"))
    if location_query:
        q = q.filter(Venue.location.ilike(f"%{location_query}%"))

    rows = q.order_by(Venue.created_at.desc()).limit(200).all()
    return jsonify([v.to_dict() for v in rows]), 200


@venues_bp.get("/me")
@login_required
def my_venues():
    rows = (
        Venue.query
        .filter_by(owner_user_id=g.user.id)
        .order_by(Venue.created_at.desc())
        .all()
    )
    return jsonify([v.to_dict() for v in rows]), 200


@venues_bp.get("/<int:venue_id>")
def get_venue(venue_id: int):
    venue = db.session.get(Venue, venue_id)
    if not venue or venue.status != VENUE_APPROVED:
        return jsonify(error="Venue not found"), 404
    out = venue.to_dict()
    out["courts"] = [c.to_dict() for c in venue.courts]
    return jsonify(out), 200


# ---------- ADMIN (owner): courts ----------
@venues_bp.post("/<int:venue_id>/courts")
@require_roles("ADMIN")
def create_court(venue_id: int):
    venue = db.session.get(Venue, venue_id)
    if not venue:
        return jsonify(error="Venue not found"), 404
    if not can_manage_venue(venue):
        return jsonify(error="Forbidden"), 403
    if venue.status != VENUE_APPROVED:
        return jsonify(error="Venue is not approved yet"), 409

    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return jsonify(error="Court name required"), 400

    cfg = current_app.config
    try:
        open_time = parse_time(data.get("open_time") or cfg.get("DEFAULT_OPEN_TIME", "06:00"))
        close_time = parse_time(data.get("close_time") or cfg.get("DEFAULT_CLOSE_TIME", "22:00"))
        duration = parse_int(data.get("slot_duration_minutes"), cfg.get("DEFAULT_SLOT_DURATION_MINUTES", 60))
        hourly_rate = parse_int(data.get("hourly_rate"), 0)
        sport_id = parse_int(data.get("sport_id"))
    except (TypeError, ValueError):
        return jsonify(error="Invalid court configuration. Times use HH:MM, numbers are integers"), 400

    if hourly_rate < 0:
        return jsonify(error="hourly_rate must not be negative"), 400
    try:
        windows = slot_windows(open_time, close_time, duration)
    except ValidationError as err:
        return jsonify(error=err.message), 400
    if not windows:
        return jsonify(error="close_time must leave room for at least one slot after open_time"), 400

    if sport_id is not None and db.session.get(Sport, sport_id) is None:
        return jsonify(error="Sport not found"), 404

    court = Court(
        venue_id=venue.id,
        sport_id=sport_id,
        name=name,
        description=(data.get("description") or "").strip() or None,
        surface_type=(data.get("surface_type") or "").strip() or None,
        indoor=bool(data.get("indoor", False)),
        hourly_rate=hourly_rate,
        open_time=open_time,
        close_time=close_time,
        slot_duration_minutes=duration,
    )
    db.session.add(court)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Court name already exists at this venue"), 409

    log_event("COURT_CREATE", user_id=g.user.id, entity="court", entity_id=court.id)
    return jsonify(court.to_dict()), 201


@venues_bp.get("/<int:venue_id>/courts")
def list_courts(venue_id: int):
    venue = db.session.get(Venue, venue_id)
    if not venue or venue.status != VENUE_APPROVED:
        return jsonify(error="Venue not found"), 404
    return jsonify([c.to_dict() for c in venue.courts]), 200


@venues_bp.get("/sports")
def list_sports():
    return jsonify([{"id": s.id, "name": s.name} for s in Sport.query.order_by(Sport.name).all()]), 200
