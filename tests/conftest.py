from datetime import timedelta

import pytest

from app import create_app
from config import Config
from models import db
from services.payments import StripePaymentCoordinator
from tests.helpers import RESPONDER, START, RecordingPublisher, add_slot
from utils.clock import ManualClock
from utils.ledger import get_ledger


class TestingConfig(Config):
    __test__ = False

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SWEEPER_ENABLED = False
    OUTBOX_REPLAY_ENABLED = False
    REDIS_URL = None
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_dummy"
    HOLD_MINUTES = 15
    PAYMENT_HOLD_MINUTES = 30


def build_app(config, clock, publisher):
    payments = StripePaymentCoordinator(
        secret_key=config.STRIPE_SECRET_KEY,
        webhook_secret=config.STRIPE_WEBHOOK_SECRET,
    )
    return create_app(config, clock=clock, publisher=publisher, payments=payments)


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def app(clock, publisher):
    app = build_app(TestingConfig, clock, publisher)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ledger(app):
    return get_ledger(app)


@pytest.fixture
def make_slot(app, clock):
    def _make(responder_id=RESPONDER, start=None, minutes=30, price_cents=5000):
        start = start or clock.now() + timedelta(days=1)
        return add_slot(start, responder_id, minutes, price_cents)
    return _make


@pytest.fixture
def file_app(tmp_path, clock, publisher):
    # in-memory SQLite shares one connection; racing threads need real ones
    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'race.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}

    app = build_app(FileConfig, clock, publisher)
    with app.app_context():
        db.create_all()
        db.session.remove()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()

