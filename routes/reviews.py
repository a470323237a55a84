from datetime import datetime
from flask import Blueprint, request, jsonify, g

from models import db
from models.booking import Booking, BOOKING_CONFIRMED, BOOKING_COMPLETED
from models.court import Court
from models.review import Review, RATING_MIN, RATING_MAX
from models.venue import Venue, VENUE_APPROVED
from services.notifications import Notifier
from utils.auth_context import login_required
from utils.audit import log_event
from utils.parsing import parse_int

reviews_bp = Blueprint("reviews", __name__)

MIN_COMMENT_LENGTH = 5


def _review_input(data):
    """(rating, comment) from a JSON body; raises ValueError with a client message."""
    try:
        rating = parse_int(data.get("rating"))
    except ValueError:
        rating = None
    if rating is None or not RATING_MIN <= rating <= RATING_MAX:
        raise ValueError(f"rating must be an integer from {RATING_MIN} to {RATING_MAX}")

    comment = data.get("comment")
    comment = comment.strip() if isinstance(comment, str) else ""
    if len(comment) < MIN_COMMENT_LENGTH:
        raise ValueError(f"comment must be at least {MIN_COMMENT_LENGTH} characters")
    return rating, comment


def _has_played_at(user_id: int, venue_id: int) -> bool:
    return db.session.query(
        Booking.query
        .join(Court, Booking.court_id == Court.id)
        .filter(
            Court.venue_id == venue_id,
            Booking.user_id == user_id,
            Booking.status.in_((BOOKING_CONFIRMED, BOOKING_COMPLETED)),
        )
        .exists()
    ).scalar()


def _live_reviews(venue_id: int):
    return Review.query.filter(Review.venue_id == venue_id, Review.deleted_at.is_(None))


@reviews_bp.get("/venues/<int:venue_id>/reviews")
def list_reviews(venue_id: int):
    venue = db.session.get(Venue, venue_id)
    if not venue or venue.status != VENUE_APPROVED:
        return jsonify(error="Venue not found"), 404

    page = max(request.args.get("page", type=int) or 1, 1)
    limit = max(1, min(request.args.get("limit", type=int) or 10, 50))

    q = _live_reviews(venue_id)
    total = q.count()
    rows = (
        q.order_by(Review.created_at.desc(), Review.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    counts = dict(
        db.session.query(Review.rating, db.func.count(Review.id))
        .filter(Review.venue_id == venue_id, Review.deleted_at.is_(None))
        .group_by(Review.rating)
        .all()
    )
    average = db.session.query(db.func.avg(Review.rating)).filter(
        Review.venue_id == venue_id, Review.deleted_at.is_(None),
    ).scalar()

    return jsonify(
        reviews=[r.to_dict() for r in rows],
        pagination={"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
        stats={
            "average_rating": round(float(average), 2) if average is not None else 0,
            "total_reviews": total,
            "rating_distribution": {str(r): counts.get(r, 0) for r in range(RATING_MAX, RATING_MIN - 1, -1)},
        },
    ), 200


@reviews_bp.post("/venues/<int:venue_id>/reviews")
@login_required
def create_review(venue_id: int):
    venue = db.session.get(Venue, venue_id)
    if not venue or venue.status != VENUE_APPROVED:
        return jsonify(error="Venue not found"), 404

    data = request.get_json(silent=True) or {}
    try:
        rating, comment = _review_input(data)
    except ValueError as err:
        return jsonify(error=str(err)), 400

    if not _has_played_at(g.user.id, venue.id):
        return jsonify(error="Only players with a booking at this venue can review it"), 403
    if _live_reviews(venue.id).filter(Review.user_id == g.user.id).first():
        return jsonify(error="You have already reviewed this venue"), 409

    review = Review(venue_id=venue.id, user_id=g.user.id, rating=rating, comment=comment)
    db.session.add(review)
    Notifier(db.session).emit(
        venue.owner_user_id,
        "review_posted",
        f"New {rating}-star review for '{venue.name}'",
        {"venue_id": venue.id, "rating": rating},
    )
    db.session.commit()

    log_event("REVIEW_CREATE", user_id=g.user.id, entity="review", entity_id=review.id,
              metadata={"venue_id": venue.id, "rating": rating})
    return jsonify(review.to_dict()), 201


def _own_review(review_id: int):
    review = db.session.get(Review, review_id)
    if not review or review.deleted_at is not None or review.user_id != g.user.id:
        return None
    return review


@reviews_bp.put("/reviews/<int:review_id>")
@login_required
def update_review(review_id: int):
    review = _own_review(review_id)
    if not review:
        return jsonify(error="Review not found"), 404

    data = request.get_json(silent=True) or {}
    try:
        review.rating, review.comment = _review_input(data)
    except ValueError as err:
        return jsonify(error=str(err)), 400
    review.updated_at = datetime.utcnow()
    db.session.commit()

    log_event("REVIEW_UPDATE", user_id=g.user.id, entity="review", entity_id=review.id)
    return jsonify(review.to_dict()), 200


@reviews_bp.delete("/reviews/<int:review_id>")
@login_required
def delete_review(review_id: int):
    review = _own_review(review_id)
    if not review:
        return jsonify(error="Review not found"), 404

    review.deleted_at = datetime.utcnow()
    review.updated_at = review.deleted_at
    db.session.commit()

    log_event("REVIEW_DELETE", user_id=g.user.id, entity="review", entity_id=review.id)
    return jsonify(message="Review deleted"), 200
