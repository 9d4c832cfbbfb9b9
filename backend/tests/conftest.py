import os
import random
import sys
import pytest

# Ensure the backend root (containing the `geoquiz` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from geoquiz import create_app, games, socketio
from geoquiz.services.games import GameService
from geoquiz.services.games.cities import parse_cities
from geoquiz.services.games.errors import GeocodingError
from geoquiz.services.games.scheduler import ScheduledTask


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    LOG_LEVEL = 'WARNING'
    GEOCODER_URL = 'http://geocoder.invalid/search'


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class ManualScheduler:
    """Collects scheduled callbacks and fires them when the test advances time."""

    def __init__(self, clock):
        self.clock = clock
        self.tasks = []

    def schedule(self, delay, callback, *args, name='task'):
        task = ScheduledTask(name, delay, self.clock() + delay)
        self.tasks.append((task, callback, args))
        return task

    def pending(self):
        return [task for task, _, _ in self.tasks if task.pending]

    def advance(self, seconds):
        target = self.clock.now + seconds
        while True:
            due = [item for item in self.tasks if item[0].pending and item[0].due_at <= target]
            if not due:
                break
            task, callback, args = min(due, key=lambda item: item[0].due_at)
            self.clock.now = max(self.clock.now, task.due_at)
            task.fired = True
            callback(*args)
        self.clock.now = target


class RecordingPublisher:
    def __init__(self):
        self.events = []
        self.rooms = {}
        self.disconnected = []

    def to_session(self, session_id, event, payload):
        self.events.append((('session', session_id), event, payload))

    def to_connection(self, connection_id, event, payload):
        self.events.append((('conn', connection_id), event, payload))

    def enter(self, connection_id, session_id):
        self.rooms.setdefault(connection_id, set()).add(session_id)

    def leave(self, connection_id, session_id):
        self.rooms.get(connection_id, set()).discard(session_id)

    def disconnect(self, connection_id):
        self.disconnected.append(connection_id)

    def named(self, event):
        return [payload for _, name, payload in self.events if name == event]

    def sent_to(self, connection_id, event):
        return [
            payload for target, name, payload in self.events
            if target == ('conn', connection_id) and name == event
        ]

    def clear(self):
        self.events.clear()


class FakeGeocoder:
    def __init__(self, places=None, on_lookup=None):
        self.places = places or {}
        self.on_lookup = on_lookup
        self.calls = []

    def geocode(self, name):
        self.calls.append(name)
        if self.on_lookup:
            self.on_lookup(name)
        if name not in self.places:
            raise GeocodingError(f'Could not find "{name}"')
        return self.places[name]


CITY_RECORDS = [
    {'name': 'London', 'lat': 51.5074, 'lng': -0.1278, 'population': 8982000, 'continent': 'EUROPE'},
    {'name': 'Paris', 'lat': 48.8566, 'lng': 2.3522, 'population': 2161000, 'continent': 'Europe'},
    {'name': 'Berlin', 'lat': 52.52, 'lng': 13.405, 'population': 3645000, 'region': 'europe'},
    {'name': 'Reykjavik', 'lat': 64.1466, 'lng': -21.9426, 'population': 131000, 'continent': 'EUROPE'},
    {'name': 'Chicago', 'lat': 41.8781, 'lng': -87.6298, 'population': 2693000, 'continent': 'NORTH_AMERICA'},
    {'name': 'Toronto', 'lat': 43.6532, 'lng': -79.3832, 'population': 2731000, 'region': 'North America'},
    {'name': 'Tokyo', 'lat': 35.6762, 'lng': 139.6503, 'population': 13960000, 'continent': 'OTHER'},
    {'name': 'Lima', 'lat': -12.0464, 'lng': -77.0428, 'population': 9752000, 'continent': 'south america'},
]


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def service(clock, scheduler, publisher):
    svc = GameService()
    svc.clock = clock
    svc.scheduler = scheduler
    svc.publisher = publisher
    svc.geocoder = FakeGeocoder({'London': (51.5074, -0.1278)})
    svc.cities = parse_cities(CITY_RECORDS)
    svc.rng = random.Random(7)
    svc.finished_retention_sec = 60
    return svc


@pytest.fixture()
def flask_app(clock):
    application = create_app(TestConfig)
    # Deterministic timers for socket-level tests
    games.clock = clock
    games.scheduler = ManualScheduler(clock)
    games.geocoder = FakeGeocoder({'London': (51.5074, -0.1278)})
    with application.app_context():
        yield application


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
