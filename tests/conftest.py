import logging
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from config import TestConfig
from dailydues import create_app, db
from dailydues.models import Commitment, Realm, User, UserCommitment, UserRealm
from dailydues.services.identity import Actor


@pytest.fixture(autouse=True)
def _quiet_logs(caplog):
    """Keep INFO chatter from services out of the test output."""
    caplog.set_level(logging.WARNING)
    yield


@pytest.fixture
def app():
    """Fresh app over an in-memory SQLite database."""
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


class Factory:
    """Small helpers that insert rows and commit."""

    def __init__(self):
        self._seq = 0
        self._owner = None

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, name=None, role="user", password="secret123"):
        n = self._next()
        name = name or f"user{n}"
        user = User(
            email=f"{name.lower()}{n}@example.com",
            username=f"{name.lower()}{n}",
            name=name,
            role=role,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    def admin(self, name="Admin"):
        return self.user(name=name, role="admin")

    def realm(self, members=(), slug=None):
        n = self._next()
        realm = Realm(name=f"Realm {n}", slug=slug or f"realm-{n}")
        db.session.add(realm)
        db.session.flush()
        for member in members:
            db.session.add(UserRealm(user_id=member.id, realm_id=realm.id))
        db.session.commit()
        return realm

    def join(self, user, realm):
        db.session.add(UserRealm(user_id=user.id, realm_id=realm.id))
        db.session.commit()

    def commitment(
        self,
        realm,
        daily_target=10,
        multiplier=2,
        active_days=(0, 1, 2, 3, 4, 5, 6),
        name="Push-ups",
        is_active=True,
    ):
        if self._owner is None:
            self._owner = self.admin(name="Owner")
        commitment = Commitment(
            realm_id=realm.id,
            name=name,
            daily_target=daily_target,
            unit="reps",
            active_days=list(active_days),
            punishment_multiplier=Decimal(str(multiplier)),
            is_active=is_active,
            created_by=self._owner.id,
        )
        db.session.add(commitment)
        db.session.commit()
        return commitment

    def assign(self, user, commitment, **aggregate):
        assignment = UserCommitment(user_id=user.id, commitment_id=commitment.id, **aggregate)
        db.session.add(assignment)
        db.session.commit()
        return assignment


@pytest.fixture
def factory(app):
    return Factory()


@pytest.fixture
def actor_for():
    def _actor(user):
        return Actor.from_user(user)

    return _actor


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return _headers


class RecordingNotifier:
    """Stands in for SlackNotifier and records every call."""

    def __init__(self, result=True):
        self.calls = []
        self.result = result

    def __getattr__(self, name):
        if not (name.startswith("notify_") or name.startswith("send")):
            raise AttributeError(name)

        def _record(*args):
            self.calls.append((name, args))
            return self.result

        return _record

    def names(self):
        return [name for name, _ in self.calls]


@pytest.fixture
def notifier():
    return RecordingNotifier()
