import os
import sys
import threading
import pytest
from flask import g
from flask.testing import FlaskClient

# Ensure the backend root (containing the `trivia` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from trivia import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    IDENTITY_HEADER = 'X-User-Id'
    MIN_PLAYERS = 2
    ROOM_CODE_MAX_ATTEMPTS = 0
    FACT_CHECK_CONFIDENCE_THRESHOLD = 0.7
    AUTO_ADVANCE = False
    QUESTION_RESULTS_DURATION_SEC = 5
    # No key: the generator is unavailable and rounds use the fallback pool
    OPENAI_API_KEY = ''
    OPENAI_API_BASE = 'https://ai.example.test/v1'
    OPENAI_MODEL = 'test-model'
    AI_TIMEOUT_SEC = 5


SETTINGS = {
    'max_players': 2,
    'rounds': 1,
    'questions_per_round': 1,
    'time_limit': 30,
    'categories': ['Science'],
    'difficulty': 'easy',
}


class FakeClock:
    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import trivia.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database, shareable across threads."""
    config = type('FileTestConfig', (TestConfig,), {
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'trivia.db'}",
    })
    application = create_app(config)
    with application.app_context():
        import trivia.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


def run_in_threads(app, *calls):
    """Run each call in its own thread and app context, released together.

    Returns one ``(result, exception)`` pair per call, in call order.
    """
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def worker(slot, call):
        with app.app_context():
            barrier.wait()
            try:
                outcomes[slot] = (call(), None)
            except Exception as exc:
                outcomes[slot] = (None, exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes


class _IsolatedUserClient(FlaskClient):
    """Test client that drops Flask-Login's cached user before each request.

    The ``flask_app`` fixture keeps an app context pushed, which Flask reuses
    for every request, so ``g._login_user`` would otherwise leak between them.
    """

    def open(self, *args, **kwargs):
        g.pop('_login_user', None)
        return super().open(*args, **kwargs)


@pytest.fixture()
def client(flask_app):
    flask_app.test_client_class = _IsolatedUserClient
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


@pytest.fixture()
def fake_clock(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr('trivia.utils.clock.now_ms', clock)
    return clock


@pytest.fixture()
def users(flask_app):
    from trivia.services.users import get_or_create_user
    return [
        get_or_create_user('ext-alice', 'Alice'),
        get_or_create_user('ext-bob', 'Bob'),
        get_or_create_user('ext-cara', 'Cara'),
        get_or_create_user('ext-dan', 'Dan'),
    ]


def auth(user):
    return {'X-User-Id': user.external_id}


def make_settings(**overrides):
    settings = dict(SETTINGS)
    settings.update(overrides)
    return settings
