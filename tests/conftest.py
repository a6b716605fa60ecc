import os
import sys
import pytest

# Ensure the project root (containing the `wholistened` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wholistened import create_app, db, socketio
from wholistened.services.games.timers import TimerHandle
from wholistened.services.tracks import StaticTrackSupplier


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ROUND_DURATION_SEC = 20
    RESULTS_DURATION_SEC = 5
    GAME_START_DELAY_SEC = 3
    MIN_PLAYERS = 2
    DEFAULT_TOTAL_ROUNDS = 10
    DEFAULT_MAX_PLAYERS = 8
    TRACK_FETCH_TIMEOUT_SEC = 2.0
    TRACK_SELECTION_POLICY = 'alternating'


class ManualTimers:
    """Timer runtime driven by the test: nothing fires until ``advance``."""

    def __init__(self):
        self.now = 0
        self._seq = 0
        self.pending = []
        self.history = []

    def schedule(self, room_code, delay, callback):
        handle = TimerHandle(room_code, delay)
        self._seq += 1
        entry = (self.now + delay, self._seq, handle, callback)
        self.pending.append(entry)
        self.history.append(entry)
        return handle

    def active(self, room_code=None):
        return [h for _, _, h, _ in self.pending
                if h.active and (room_code is None or h.room_code == room_code)]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [e for e in self.pending if not e[2].cancelled and e[0] <= target]
            if not due:
                break
            entry = min(due, key=lambda e: (e[0], e[1]))
            self.pending.remove(entry)
            self.now = entry[0]
            entry[2].fired = True
            entry[3]()
        self.pending = [e for e in self.pending if not e[2].cancelled]
        self.now = target


@pytest.fixture()
def timers():
    return ManualTimers()


@pytest.fixture()
def supplier():
    return StaticTrackSupplier()


@pytest.fixture()
def flask_app(timers, supplier):
    application = create_app(TestConfig, timers=timers, track_supplier=supplier)
    with application.app_context():
        # Ensure models are imported so tables are created
        import wholistened.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def services(flask_app):
    return flask_app.extensions['wholistened']


@pytest.fixture()
def events(services, monkeypatch):
    """Record every room notification as (room_code, event, payload)."""
    recorded = []

    def _record(room_code, event, payload=None):
        recorded.append((room_code, event, payload or {}))

    monkeypatch.setattr(services.notifier, 'notify_room', _record)
    return recorded


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
def make_game(client):
    """Create a room with ``players`` joined and linked; returns (code, user_ids)."""

    def _make(players=2, total_rounds=3, round_duration=20):
        res = client.post('/api/rooms', json={
            'name': 'Test Room',
            'total_rounds': total_rounds,
            'round_duration': round_duration,
        })
        code = res.get_json()['code']
        user_ids = []
        for i in range(players):
            joined = client.post(f'/api/rooms/{code}/join', json={'display_name': f'Player{i + 1}'}).get_json()
            uid = joined['user_id']
            client.post(f'/api/users/{uid}/account', json={'access_token': f'token-{uid}'})
            user_ids.append(uid)
        return code, user_ids

    return _make
