import os
import sys

import pytest

# Ensure the backend root (containing the `kiatere` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from kiatere.config import Config
from kiatere.game import service
from kiatere.server import create_app


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    TRUST_PROXY_HEADERS = False
    SOCKETIO_ASYNC_MODE = 'threading'
    # Tests drive the countdown by calling TurnTimer.tick themselves.
    TIMER_TICK_SEC = 3600
    CLEANUP_INTERVAL_SEC = 0


def _received(client):
    """Envelopes delivered to ``client`` on the ``message`` event since the last call."""
    out = []
    for pkt in client.get_received():
        if pkt['name'] != 'message':
            continue
        args = pkt['args']
        if isinstance(args, list):
            args = args[0] if args else None
        out.append(args)
    return out


@pytest.fixture(autouse=True)
def clear_rooms():
    service.clear_rooms()
    yield
    service.clear_rooms()


@pytest.fixture()
def app_and_socketio():
    return create_app(TestConfig)


@pytest.fixture()
def flask_app(app_and_socketio):
    return app_and_socketio[0]


@pytest.fixture()
def socketio(app_and_socketio):
    return app_and_socketio[1]


@pytest.fixture()
def turn_timer(flask_app):
    timer = flask_app.extensions['kiatere.turn_timer']
    yield timer
    timer.cancel_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def connect(flask_app, socketio, turn_timer):
    clients = []

    def _connect():
        test_client = socketio.test_client(flask_app)
        clients.append(test_client)
        return test_client

    yield _connect

    for test_client in clients:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except Exception:
            pass


@pytest.fixture()
def received():
    return _received
