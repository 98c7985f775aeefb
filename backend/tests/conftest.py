import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Ensure the backend root (containing the `pixeltrivia` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from pixeltrivia import create_app, db, socketio
from pixeltrivia.services.rooms.controller import RoomController, RoomSettings
from pixeltrivia.services.rooms.notifier import RoomNotifier
from pixeltrivia.services.rooms.questions import QuestionData, QuestionSetLoader, seed_question_bank
from pixeltrivia.services.rooms.store import RoomStore


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    RATE_LIMIT_ENABLED = False
    ROOM_TTL_SECONDS = 10800


class RecordingNotifier(RoomNotifier):
    """Keeps room events in memory instead of emitting them."""

    def __init__(self):
        self.events = []

    def room_changed(self, room_code, event, payload=None):
        self.events.append((room_code, event, dict(payload or {})))

    def names(self, room_code=None):
        return [e for code, e, _ in self.events if room_code is None or code == room_code]


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def static_source(questions):
    """Question source that always hands back the given list, trimmed to count."""
    def source(category, difficulty, count):
        return list(questions)[:count]
    return source


SAMPLE_QUESTIONS = [
    QuestionData('What color do you get when you mix red and blue?', ['Green', 'Purple', 'Orange', 'Yellow'], 1,
                 'Colors & Shapes', 'easy'),
    QuestionData('How many sides does a triangle have?', ['2', '3', '4', '5'], 1, 'Colors & Shapes', 'easy'),
    QuestionData('What is 7 x 8?', ['54', '56', '58', '64'], 1, 'Math', 'medium'),
    QuestionData('Which planet is known as the Red Planet?', ['Venus', 'Jupiter', 'Mars', 'Saturn'], 2,
                 'Science', 'easy'),
]


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import pixeltrivia.models  # noqa: F401
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
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def seeded_bank(flask_app):
    return seed_question_bank()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def store(flask_app, clock):
    return RoomStore(room_ttl_seconds=flask_app.config['ROOM_TTL_SECONDS'], clock=clock)


@pytest.fixture()
def controller(store, notifier, clock):
    loader = QuestionSetLoader(store, source=static_source(SAMPLE_QUESTIONS))
    return RoomController(store, loader, notifier=notifier, clock=clock, settings=RoomSettings())
