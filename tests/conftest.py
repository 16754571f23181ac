import itertools

import pytest

from app import create_app
from config import TestingConfig
from models import db
from models.slot import Slot
from models.turf import Turf
from models.user import Role, User
from services import reservations
from utils.clock import FrozenClock
from tests.helpers import PLAY_DATE, START
from utils.seed import seed_roles


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    app.extensions["clock"] = FrozenClock(START)
    with app.app_context():
        db.create_all()
        seed_roles()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def clock(app):
    return app.extensions["clock"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(admin=False, email=None):
        n = next(counter)
        user = User(
            email=email or f"player{n}@example.com",
            full_name=f"Player {n}",
            phone_number=f"98765{n:05d}",
        )
        user.roles.append(Role.query.filter_by(name="ADMIN" if admin else "USER").first())
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_turf(app):
    def _make(price=1000, open_time="06:00", close_time="23:00", name="Arena One"):
        turf = Turf(
            name=name,
            location="Koramangala, Bengaluru",
            price_per_hour=price,
            open_time=open_time,
            close_time=close_time,
        )
        db.session.add(turf)
        db.session.commit()
        return turf

    return _make


@pytest.fixture
def make_slot(app):
    def _make(turf, start="18:00", end="19:00", day=PLAY_DATE, price=None):
        slot = Slot(
            turf_id=turf.id,
            date=day,
            start_time=start,
            end_time=end,
            price=turf.price_per_hour if price is None else price,
        )
        db.session.add(slot)
        db.session.commit()
        return slot

    return _make


@pytest.fixture
def book(app):
    """Lock every slot for ``user`` and turn the locks into a pending booking."""
    def _book(user, *slots, **kwargs):
        for slot in slots:
            reservations.lock_slot(slot.id, user.id)
        return reservations.create_booking([s.id for s in slots], user.id, **kwargs)

    return _book
