from datetime import date, timedelta

import pytest

from app import create_app
from config import Config
from models import db
from models.booking import Booking, BookingStatus
from models.court import Court
from models.equipment import Equipment
from models.facility import Facility
from models.user import Role, User
from security.password import hash_password
from security.rbac import ROLE_ADMIN, ROLE_PLAYER, ROLE_STAFF
from utils.clock import local_instant, to_storage

PASSWORD = "courtbook123"

# A Monday well in the future; Asia/Kuala_Lumpur is UTC+8 with no DST
MONDAY = date(2030, 3, 4)
# "now" for service calls: the Friday before, at noon local time
NOW = local_instant(date(2030, 3, 1), "12:00")


class TestConfig(Config):
    __test__ = False

    TESTING = True
    AUTO_CREATE_TABLES = True
    BCRYPT_ROUNDS = 4
    CSRF_ENABLED = False
    SESSION_COOKIE_SECURE = False
    LOG_LEVEL = "WARNING"
    # writers queue on the SQLite write lock instead of failing fast
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 15}}


@pytest.fixture
def config_class(tmp_path):
    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "courtbook-test.db")

    return _Config


@pytest.fixture
def app(config_class):
    app = create_app(config_class)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _make_user(email, *role_names):
    user = User(email=email, password_hash=hash_password(PASSWORD), full_name=email.split("@")[0])
    for name in role_names:
        user.roles.append(Role.query.filter_by(name=name).one())
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def player(app):
    return _make_user("player@example.com", ROLE_PLAYER)


@pytest.fixture
def player2(app):
    return _make_user("player2@example.com", ROLE_PLAYER)


@pytest.fixture
def staff(app):
    return _make_user("staff@example.com", ROLE_STAFF)


@pytest.fixture
def admin(app):
    return _make_user("admin@example.com", ROLE_ADMIN)


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make():
        counter["n"] += 1
        return _make_user(f"user{counter['n']}@example.com", ROLE_PLAYER)

    return _make


@pytest.fixture
def facility(app):
    """Badminton Hall, 08:00-22:00, two courts and some rackets."""
    f = Facility(name="Badminton Hall", sport_type="badminton", open_time="08:00", close_time="22:00")
    f.courts = [Court(name="Court 1"), Court(name="Court 2")]
    f.equipment = [Equipment(name="Badminton Racket", qty_total=4, qty_available=4)]
    db.session.add(f)
    db.session.commit()
    return f


@pytest.fixture
def other_facility(app):
    f = Facility(name="Futsal Arena", sport_type="futsal", open_time="09:00", close_time="23:00")
    f.courts = [Court(name="Pitch A")]
    db.session.add(f)
    db.session.commit()
    return f


@pytest.fixture
def court1(facility):
    return next(c for c in facility.courts if c.name == "Court 1")


@pytest.fixture
def court2(facility):
    return next(c for c in facility.courts if c.name == "Court 2")


@pytest.fixture
def add_booking(app):
    """Insert a booking row directly, bypassing the writer's checks."""

    def _add(user, court, day, start="10:00", hours=1, status=BookingStatus.CONFIRMED):
        starts_at = local_instant(day, start)
        booking = Booking(
            user_id=user.id,
            facility_id=court.facility_id,
            court_id=court.id,
            start_time=to_storage(starts_at),
            end_time=to_storage(starts_at + timedelta(hours=hours)),
            status=status,
        )
        db.session.add(booking)
        db.session.commit()
        return booking

    return _add


@pytest.fixture
def login(client):
    def _login(user_or_email, password=PASSWORD):
        email = getattr(user_or_email, "email", user_or_email)
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp

    return _login
