import os
import sys
import pytest
from flask import g
from flask.testing import FlaskClient

# Ensure the backend root (containing the `restaum` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from restaum import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = 'DEBUG'
    CORS_ORIGINS = []
    DEFAULT_ELIMINATION_INTERVAL_SEC = 60
    MAX_ELIMINATION_INTERVAL_SEC = 3600
    DEFAULT_MAX_PARTICIPANTS = 50
    MAX_PARTICIPANTS_LIMIT = 999
    MIN_PARTICIPANTS = 2
    MAX_GAME_DURATION_SEC = 0
    TIMER_HEARTBEAT_SEC = 0
    WHATSAPP_ENABLED = False
    VONAGE_MESSAGES_URL = 'https://messages.test/v1/messages'
    VONAGE_API_KEY = 'key'
    VONAGE_API_SECRET = 'secret'
    VONAGE_WHATSAPP_FROM = '5531999990000'
    WHATSAPP_TIMEOUT_SEC = 1


class SchedulerTestConfig(TestConfig):
    ENABLE_SCHEDULER_IN_TESTS = True


class IdentityPerRequestClient(FlaskClient):
    """Test client that resolves ``X-User-Id`` afresh on every request.

    The app context is shared across requests in tests, so Flask-Login's
    cached user on ``g`` has to be dropped between calls.
    """

    def open(self, *args, **kwargs):
        g.pop('_login_user', None)
        return super().open(*args, **kwargs)


def _build_app(config):
    application = create_app(config)
    application.test_client_class = IdentityPerRequestClient
    return application


@pytest.fixture()
def flask_app():
    application = _build_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import restaum.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def timer_sleeps(monkeypatch):
    """Record the timer's sleeps instead of waiting them out."""
    from restaum.services.games import scheduler
    slept = []
    monkeypatch.setattr(scheduler.time, 'sleep', slept.append)
    return slept


@pytest.fixture()
def scheduler_app(timer_sleeps):
    application = _build_app(SchedulerTestConfig)
    with application.app_context():
        import restaum.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


def _seed_users():
    from restaum.models import User
    users = {
        'admin': User(id='admin', name='Admin', is_admin=True),
        'alice': User(id='alice', name='Alice', whatsapp='+55 31 98888-0001'),
        'bob': User(id='bob', name='Bob', whatsapp='+55 31 98888-0002'),
        'cara': User(id='cara', name='Cara', whatsapp='+55 31 98888-0003'),
        'dan': User(id='dan', name='Dan'),
    }
    db.session.add_all(users.values())
    db.session.commit()
    return users


@pytest.fixture()
def users(flask_app):
    return _seed_users()


@pytest.fixture()
def scheduler_users(scheduler_app):
    return _seed_users()


def auth(user_id):
    return {'X-User-Id': user_id}


@pytest.fixture()
def make_game():
    """Factory creating a waiting game through the service layer."""
    from restaum.services.games.lifecycle import create_game

    def _make(max_participants=50, elimination_interval=1, title='Resta Um #1', admin_id='admin'):
        return create_game(admin_id, {
            'title': title,
            'description': 'Live elimination',
            'max_participants': max_participants,
            'elimination_interval': elimination_interval,
        })
    return _make
