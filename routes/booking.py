from flask import Blueprint, request, jsonify, g

from models import db
from models.booking import Booking
from models.court import Court
from models.slot import TimeSlot
from models.venue import Venue
from security.rbac import SUPER_ADMIN, has_role, require_roles
from services.deps import booking_service
from services.errors import ConflictError
from utils.auth_context import login_required
from utils.audit import log_event
from utils.parsing import parse_date, parse_int, parse_time

booking_bp = Blueprint("booking", __name__)


def _slot_query(data):
    slot_id = parse_int(data.get("slot_id"))
    if slot_id is not None:
        return {"slot_id": slot_id}
    return {
        "court_id": parse_int(data.get("court_id")),
        "slot_date": parse_date(data.get("date")),
        "start_time": parse_time(data.get("start_time")),
        "end_time": parse_time(data.get("end_time")),
    }


# ---------- PLAYERS: book slot (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    try:
        query = _slot_query(data)
    except ValueError:
        return jsonify(error="slot_id, or court_id with date, start_time and end_time, is required"), 400

    notes = (data.get("notes") or "").strip()[:255] or None
    try:
        booking = booking_service().create_booking(g.user, notes=notes, **query)
    except ConflictError as err:
        log_event("BOOKING_FAIL_ALREADY_BOOKED", user_id=g.user.id, entity="slot", entity_id=query.get("slot_id"))
        return jsonify(err.to_dict()), err.status_code

    log_event("BOOKING_CREATE", user_id=g.user.id, entity="booking", entity_id=booking.id, metadata={"slot_id": booking.slot_id})
    return jsonify(booking.to_dict(slot=db.session.get(TimeSlot, booking.slot_id))), 201


# ---------- PLAYERS: cancel booking (policy window) ----------
@booking_bp.post("/bookings/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None

    booking = db.session.get(Booking, booking_id)
    if not booking or booking.user_id != g.user.id:
        return jsonify(error="Booking not found"), 404

    booking_service().cancel_booking(booking, g.user, reason=reason)

    log_event("BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id, metadata={"reason": reason})
    return jsonify(message="Cancelled"), 200


# ---------- PLAYERS: view my bookings ----------
@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    status = request.args.get("status")  # CONFIRMED/CANCELLED/COMPLETED
    q = Booking.query.filter_by(user_id=g.user.id)
    if status:
        q = q.filter_by(status=status.strip().upper())

    rows = q.order_by(Booking.created_at.desc()).all()

    slot_ids = [b.slot_id for b in rows]
    slots = {s.id: s for s in TimeSlot.query.filter(TimeSlot.id.in_(slot_ids)).all()} if slot_ids else {}

    return jsonify([b.to_dict(slot=slots.get(b.slot_id)) for b in rows]), 200


# ---------- ADMIN (owner): bookings on my venues ----------
@booking_bp.get("/bookings")
@require_roles("ADMIN")
def list_all_bookings():
    status = request.args.get("status")
    q = Booking.query
    if not has_role(SUPER_ADMIN):
        q = (
            q.join(Court, Booking.court_id == Court.id)
            .join(Venue, Court.venue_id == Venue.id)
            .filter(Venue.owner_user_id == g.user.id)
        )
    if status:
        q = q.filter(Booking.status == status.strip().upper())

    rows = q.order_by(Booking.created_at.desc()).limit(200).all()
    return jsonify([b.to_dict() for b in rows]), 200


# ---------- ADMIN: cancel any booking on my venues ----------
@booking_bp.post("/bookings/<int:booking_id>/admin_cancel")
@require_roles("ADMIN")
def admin_cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or "Admin cancellation"

    booking = db.session.get(Booking, booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404

    court = db.session.get(Court, booking.court_id)
    if not has_role(SUPER_ADMIN) and (court is None or court.venue.owner_user_id != g.user.id):
        return jsonify(error="Booking not found"), 404

    booking_service().cancel_booking(booking, g.user, reason=reason, enforce_cutoff=False)

    log_event("ADMIN_BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id, metadata={"reason": reason})
    return jsonify(message="Cancelled by admin"), 200
