from datetime import date, timedelta

import pytest

from models import db
from models.match import Match, MATCH_CANCELLED, MATCH_FULL, MATCH_OPEN
from models.notification import Notification
from models.sport import Sport

DAY = date.today() + timedelta(days=4)


@pytest.fixture
def slot_id(service, court):
    return service.generate_slots(court, DAY, DAY)[0].id


@pytest.fixture
def sport_id(app):
    return Sport.query.filter_by(name="Badminton").one().id


def test_host_opens_match_on_a_slot(login_as, player, slot_id, sport_id) -> None:
    resp = login_as(player.email).post(
        "/matches", json={"slot_id": slot_id, "sport_id": sport_id, "max_players": 4, "description": "Casual doubles"},
    )

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["status"] == MATCH_OPEN
    assert body["players"] == [player.id]
    assert body["slot_id"] == slot_id
    assert [m["id"] for m in login_as(player.email).get("/matches").get_json()] == [body["id"]]


def test_match_needs_two_players(login_as, player, slot_id) -> None:
    resp = login_as(player.email).post("/matches", json={"slot_id": slot_id, "max_players": 1})
    assert resp.status_code == 400


def test_match_on_taken_slot_conflicts(login_as, make_user, player, slot_id) -> None:
    make_user("second@example.com")
    login_as(player.email).post("/bookings", json={"slot_id": slot_id})

    resp = login_as("second@example.com").post("/matches", json={"slot_id": slot_id})

    assert resp.status_code == 409
    assert Match.query.count() == 0


def test_join_fills_match_and_notifies_host(login_as, make_user, player, slot_id) -> None:
    guest = make_user("guest@example.com", full_name="Gil Guest")
    make_user("late@example.com")
    match_id = login_as(player.email).post("/matches", json={"slot_id": slot_id}).get_json()["id"]

    joined = login_as(guest.email).post(f"/matches/{match_id}/join")
    late = login_as("late@example.com").post(f"/matches/{match_id}/join")

    assert joined.status_code == 200
    assert joined.get_json()["status"] == MATCH_FULL
    assert sorted(joined.get_json()["players"]) == sorted([player.id, guest.id])
    assert late.status_code == 409
    assert late.get_json()["retryable"] is True
    note = Notification.query.filter_by(user_id=player.id, type="match_joined").one()
    assert "Gil Guest" in note.message


def test_cannot_join_twice(login_as, make_user, player, slot_id) -> None:
    guest = make_user("guest@example.com")
    match_id = login_as(player.email).post("/matches", json={"slot_id": slot_id, "max_players": 4}).get_json()["id"]
    client = login_as(guest.email)

    assert client.post(f"/matches/{match_id}/join").status_code == 200
    assert client.post(f"/matches/{match_id}/join").status_code == 400
    assert login_as(player.email).post(f"/matches/{match_id}/join").status_code == 400


def test_cancelling_host_booking_cancels_match(login_as, make_user, player, slot_id) -> None:
    guest = make_user("guest@example.com")
    host = login_as(player.email)
    body = host.post("/matches", json={"slot_id": slot_id, "max_players": 4}).get_json()
    login_as(guest.email).post(f"/matches/{body['id']}/join")

    assert host.post(f"/bookings/{body['booking_id']}/cancel").status_code == 200

    assert db.session.get(Match, body["id"]).status == MATCH_CANCELLED
    assert Notification.query.filter_by(user_id=guest.id, type="match_cancelled").count() == 1
    assert login_as(guest.email).post(f"/matches/{body['id']}/join").status_code == 409


def test_unknown_match_and_sport(login_as, player, slot_id) -> None:
    client = login_as(player.email)

    assert client.get("/matches/404").status_code == 404
    assert client.post("/matches", json={"slot_id": slot_id, "sport_id": 999}).status_code == 404
