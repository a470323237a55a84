from flask import Blueprint, request, jsonify, g

from models import db
from models.match import Match, MATCH_OPEN
from models.sport import Sport
from services.deps import booking_service
from utils.auth_context import login_required
from utils.audit import log_event
from utils.parsing import parse_int

matches_bp = Blueprint("matches", __name__, url_prefix="/matches")


@matches_bp.post("")
@login_required
def create_match():
    data = request.get_json(silent=True) or {}
    try:
        slot_id = parse_int(data.get("slot_id"))
        sport_id = parse_int(data.get("sport_id"))
        max_players = parse_int(data.get("max_players"), 2)
    except (TypeError, ValueError):
        return jsonify(error="slot_id, sport_id and max_players must be integers"), 400
    if slot_id is None:
        return jsonify(error="slot_id required"), 400
    if sport_id is not None and db.session.get(Sport, sport_id) is None:
        return jsonify(error="Sport not found"), 404

    description = (data.get("description") or "").strip()[:255] or None
    match = booking_service().create_match(
        g.user, slot_id, sport_id=sport_id, max_players=max_players, description=description,
    )

    log_event("MATCH_CREATE", user_id=g.user.id, entity="match", entity_id=match.id, metadata={"slot_id": slot_id})
    return jsonify(match.to_dict()), 201


@matches_bp.get("")
def list_open_matches():
    q = Match.query.filter(Match.status == MATCH_OPEN)
    sport_id = request.args.get("sport_id", type=int)
    if sport_id:
        q = q.filter(Match.sport_id == sport_id)
    rows = q.order_by(Match.created_at.desc()).limit(200).all()
    return jsonify([m.to_dict() for m in rows]), 200


@matches_bp.get("/<int:match_id>")
def get_match(match_id: int):
    match = db.session.get(Match, match_id)
    if not match:
        return jsonify(error="Match not found"), 404
    return jsonify(match.to_dict()), 200


@matches_bp.post("/<int:match_id>/join")
@login_required
def join_match(match_id: int):
    match = db.session.get(Match, match_id)
    if not match:
        return jsonify(error="Match not found"), 404

    booking_service().join_match(match, g.user)

    log_event("MATCH_JOIN", user_id=g.user.id, entity="match", entity_id=match.id)
    return jsonify(match.to_dict()), 200
