import os
import sys
from datetime import timedelta
from types import SimpleNamespace

import pytest

# Ensure the backend root (containing the `dartmaster` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from dartmaster import create_app, db, socketio
from dartmaster.models import (
    Match,
    MatchParticipant,
    Tournament,
    User,
    MATCH_LIVE,
    TOURNAMENT_ACTIVE,
    utcnow,
)


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    DEFAULT_MATCH_FORMAT = '501'
    MAX_MATCH_PARTICIPANTS = 2
    SCORING_MAX_RETRIES = 3


@pytest.fixture()
def flask_app():
    # Requests get their own app context (and so their own Flask-Login `g`);
    # the in-memory database lives as long as the engine does.
    application = create_app(TestConfig)
    with application.app_context():
        import dartmaster.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """App context for calling services directly."""
    with flask_app.app_context():
        yield flask_app
        db.session.remove()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_user(flask_app):
    def _make(username, password='password', **kwargs):
        with flask_app.app_context():
            user = User(username=username, email=f'{username}@example.com', full_name=username.title(), **kwargs)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make


@pytest.fixture()
def login_as(flask_app):
    """Return a fresh test client logged in as the given user."""
    def _login(username, password='password'):
        c = flask_app.test_client()
        res = c.post('/api/auth/login', json={'username': username, 'password': password})
        assert res.status_code == 200, res.get_json()
        return c
    return _login


@pytest.fixture()
def seeded(flask_app, make_user):
    """A live match between alice and bob in an active 501 tournament run by admin."""
    admin_id = make_user('admin', role='admin')
    alice_id = make_user('alice')
    bob_id = make_user('bob')
    carol_id = make_user('carol')
    with flask_app.app_context():
        tournament = Tournament(
            name='Club Night',
            status=TOURNAMENT_ACTIVE,
            match_format='501',
            start_date=utcnow() + timedelta(days=1),
            max_players=16,
            admin_id=admin_id,
        )
        db.session.add(tournament)
        db.session.flush()
        match = Match(tournament_id=tournament.id, status=MATCH_LIVE, actual_start=utcnow())
        db.session.add(match)
        db.session.flush()
        db.session.add(MatchParticipant(match_id=match.id, user_id=alice_id))
        db.session.add(MatchParticipant(match_id=match.id, user_id=bob_id))
        db.session.commit()
        return SimpleNamespace(
            tournament_id=tournament.id,
            match_id=match.id,
            admin_id=admin_id,
            alice_id=alice_id,
            bob_id=bob_id,
            carol_id=carol_id,
        )


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
