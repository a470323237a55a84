from datetime import time

import pytest

from app import create_app
from config import Config
from models import db
from models.booking import Booking
from models.court import Court
from models.user import User, Role
from models.venue import Venue, VENUE_APPROVED
from security.password import hash_password
from services.notifications import Notifier
from services.slots import SlotService

PASSWORD = "password123"


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    AUTO_CREATE_TABLES = True
    CSRF_ENABLED = False
    BCRYPT_ROUNDS = 4
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def make_user(app):
    def _make(email, roles=("PLAYER",), full_name=None):
        user = User(email=email, password_hash=hash_password(PASSWORD), full_name=full_name)
        user.roles = Role.query.filter(Role.name.in_(roles)).all()
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com", roles=("PLAYER", "ADMIN"), full_name="Olive Owner")


@pytest.fixture
def player(make_user):
    return make_user("player@example.com", full_name="Pat Player")


@pytest.fixture
def super_admin(make_user):
    return make_user("root@example.com", roles=("SUPER_ADMIN",))


@pytest.fixture
def venue(owner):
    venue = Venue(owner_user_id=owner.id, name="Riverside Arena", location="Pune", status=VENUE_APPROVED)
    db.session.add(venue)
    db.session.commit()
    return venue


@pytest.fixture
def make_court(venue):
    def _make(name="Court 1", open_time=time(6, 0), close_time=time(8, 0), duration=60, hourly_rate=1000):
        court = Court(
            venue_id=venue.id,
            name=name,
            open_time=open_time,
            close_time=close_time,
            slot_duration_minutes=duration,
            hourly_rate=hourly_rate,
        )
        db.session.add(court)
        db.session.commit()
        return court
    return _make


@pytest.fixture
def court(make_court):
    return make_court()


@pytest.fixture
def service(app):
    return SlotService(
        db.session,
        connection=app.extensions["connection_cache"],
        notifier=Notifier(db.session),
    )


@pytest.fixture
def make_booking(player):
    def _make(slot, user=None):
        booking = Booking(user_id=(user or player).id, court_id=slot.court_id, slot_id=slot.id, total_price=slot.price)
        db.session.add(booking)
        db.session.flush()
        return booking.id
    return _make


@pytest.fixture
def login_as(app):
    def _login(email, password=PASSWORD):
        client = app.test_client()
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return client
    return _login
