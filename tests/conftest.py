import json
import os

# before config/db are imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from db import init_db, make_engine, make_session_factory
from notify import PushNotifier
from progression import create_new
from store import VoteStore
from upload import parse_upload

MEMBER_UPLOAD = {
    "type": "member",
    "date": "2025-03-01",
    "candidates": [
        {"name": "Alex Rivera", "major": "Biology", "grad_year": 2027, "gpa": 3.6},
        {"name": "Bea Okafor", "major": "History", "grad_year": "2026"},
        {"name": "Cam Liu"},
    ],
}

EXEC_UPLOAD = {
    "type": "exec",
    "date": "2025-04-12",
    "positions": [
        {"name": "President", "candidates": [{"name": "Dana"}, {"name": "Eli"}]},
        {"name": "Treasurer", "candidates": [{"name": "Fay"}, {"name": "Gus"}, {"name": "Hal"}]},
    ],
}


@pytest.fixture
def store():
    engine = make_engine("sqlite:///:memory:")
    init_db(bind=engine)
    yield VoteStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def make_user(store):
    counter = {"n": 0}

    def _make(approved=True, admin=False, can_vote=None, password="pw"):
        counter["n"] += 1
        user = store.create_profile(f"user{counter['n']}@example.org", generate_password_hash(password),
                                    is_admin=admin, is_approved=approved)
        if can_vote is not None and approved:
            user = store.set_can_vote(user.id, can_vote)
        return user
    return _make


@pytest.fixture
def notifier():
    return PushNotifier()


@pytest.fixture
def member_event(store, notifier):
    """Open member event with three candidates; returns its EventProgression."""
    plan = parse_upload(json.dumps(MEMBER_UPLOAD), "Spring Super Saturday")
    return create_new(store, plan, notifier=notifier)


@pytest.fixture
def exec_event(store, notifier):
    plan = parse_upload(json.dumps(EXEC_UPLOAD), "Exec Elections")
    return create_new(store, plan, notifier=notifier)


@pytest.fixture
def app(store, notifier):
    app = create_app(store=store, notifier=notifier, secret_key="test")
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(user):
        with client.session_transaction() as sess:
            sess["user_id"] = user.id
        return client
    return _login
