from datetime import date, timedelta

import pytest

from models.notification import Notification
from models.review import Review

DAY = date.today() + timedelta(days=2)


@pytest.fixture
def played(login_as, service, court, player):
    """Logged-in client for a player holding a booking at the venue."""
    slot = service.generate_slots(court, DAY, DAY)[0]
    client = login_as(player.email)
    assert client.post("/bookings", json={"slot_id": slot.id}).status_code == 201
    return client


def _review(rating=4, comment="Great lights and surface"):
    return {"rating": rating, "comment": comment}


def test_player_with_booking_reviews_venue(played, owner, player, venue) -> None:
    resp = played.post(f"/venues/{venue.id}/reviews", json=_review())

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["user_id"] == player.id
    assert body["rating"] == 4
    note = Notification.query.filter_by(user_id=owner.id, type="review_posted").one()
    assert venue.name in note.message


def test_listing_reports_average_and_distribution(app, played, venue) -> None:
    played.post(f"/venues/{venue.id}/reviews", json=_review(rating=4))

    resp = app.test_client().get(f"/venues/{venue.id}/reviews")

    assert resp.status_code == 200
    body = resp.get_json()
    assert [r["rating"] for r in body["reviews"]] == [4]
    assert body["stats"]["average_rating"] == 4
    assert body["stats"]["total_reviews"] == 1
    assert body["stats"]["rating_distribution"] == {"5": 0, "4": 1, "3": 0, "2": 0, "1": 0}
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}


def test_empty_venue_has_zero_average(app, venue) -> None:
    body = app.test_client().get(f"/venues/{venue.id}/reviews").get_json()
    assert body["reviews"] == []
    assert body["stats"]["average_rating"] == 0


def test_unknown_venue_is_not_found(app, login_as, player) -> None:
    assert app.test_client().get("/venues/999/reviews").status_code == 404
    assert login_as(player.email).post("/venues/999/reviews", json=_review()).status_code == 404


def test_review_requires_login(app, venue) -> None:
    assert app.test_client().post(f"/venues/{venue.id}/reviews", json=_review()).status_code == 401


def test_player_without_booking_cannot_review(login_as, player, venue) -> None:
    resp = login_as(player.email).post(f"/venues/{venue.id}/reviews", json=_review())

    assert resp.status_code == 403
    assert Review.query.count() == 0


def test_cancelled_booking_does_not_qualify(played, venue) -> None:
    booking_id = played.get("/bookings/me").get_json()[0]["id"]
    assert played.post(f"/bookings/{booking_id}/cancel", json={}).status_code == 200

    resp = played.post(f"/venues/{venue.id}/reviews", json=_review())

    assert resp.status_code == 403


def test_one_live_review_per_player(played, venue) -> None:
    first = played.post(f"/venues/{venue.id}/reviews", json=_review()).get_json()

    dup = played.post(f"/venues/{venue.id}/reviews", json=_review(rating=2))
    assert dup.status_code == 409

    assert played.delete(f"/reviews/{first['id']}").status_code == 200
    again = played.post(f"/venues/{venue.id}/reviews", json=_review(rating=2))
    assert again.status_code == 201
    assert Review.query.filter_by(deleted_at=None).count() == 1


@pytest.mark.parametrize(
    "payload",
    [
        _review(rating=6),
        _review(rating=0),
        _review(rating="4.5"),
        _review(rating=[4]),
        {"comment": "No rating given here"},
        _review(comment="ok"),
        _review(comment="    "),
    ],
)
def test_review_payload_is_validated(played, venue, payload) -> None:
    resp = played.post(f"/venues/{venue.id}/reviews", json=payload)

    assert resp.status_code == 400
    assert Review.query.count() == 0


def test_only_author_edits_or_deletes(played, make_user, login_as, venue) -> None:
    review_id = played.post(f"/venues/{venue.id}/reviews", json=_review()).get_json()["id"]
    make_user("stranger@example.com")
    stranger = login_as("stranger@example.com")

    assert stranger.put(f"/reviews/{review_id}", json=_review(rating=1)).status_code == 404
    assert stranger.delete(f"/reviews/{review_id}").status_code == 404

    resp = played.put(f"/reviews/{review_id}", json=_review(rating=5, comment="Even better second time"))
    assert resp.status_code == 200
    assert resp.get_json()["rating"] == 5
    assert played.put(f"/reviews/{review_id}", json=_review(rating=9)).status_code == 400


def test_deleted_review_leaves_listing(app, played, venue) -> None:
    review_id = played.post(f"/venues/{venue.id}/reviews", json=_review()).get_json()["id"]
    played.delete(f"/reviews/{review_id}")

    body = app.test_client().get(f"/venues/{venue.id}/reviews").get_json()

    assert body["reviews"] == []
    assert body["stats"]["total_reviews"] == 0
    assert played.delete(f"/reviews/{review_id}").status_code == 404
