import itertools
import os
import sys
import pytest

# Ensure the backend root (containing the `rayguess` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from rayguess import create_app, socketio
from rayguess.coordinator import GameCoordinator
from rayguess.identity import IdentityVerifier, VerifiedIdentity
from rayguess.sessions import Participant

BOT_TOKEN = '123456:TEST-bot-token'
OPERATOR_ID = 42


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    TELEGRAM_BOT_TOKEN = BOT_TOKEN
    OPERATOR_TELEGRAM_ID = OPERATOR_ID
    PRODUCTION_MODE = False
    AUTH_MAX_AGE_SEC = 0
    CORS_ORIGINS = ['http://localhost:5173']


class ProductionTestConfig(TestConfig):
    PRODUCTION_MODE = True


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


def _connect(flask_app):
    return socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )


@pytest.fixture()
def sio_factory(flask_app):
    """Open any number of Socket.IO clients on /ws; all are closed afterwards."""
    opened = []

    def factory():
        test_client = _connect(flask_app)
        test_client.get_received('/ws')  # drop the 'connected' greeting
        opened.append(test_client)
        return test_client

    yield factory
    for test_client in opened:
        if test_client.is_connected('/ws'):
            test_client.disconnect(namespace='/ws')


def received(test_client, name):
    """Payloads of every queued event called ``name``."""
    return [pkt['args'][0] for pkt in test_client.get_received('/ws') if pkt['name'] == name]


@pytest.fixture()
def clock():
    ticks = itertools.count(1000)
    return lambda: float(next(ticks))


@pytest.fixture()
def coordinator(clock):
    return GameCoordinator(
        IdentityVerifier(BOT_TOKEN),
        operator_id=OPERATOR_ID,
        production_mode=False,
        clock=clock,
    )


def make_participant(external_id, name='Player', is_operator=False):
    return Participant(identity=VerifiedIdentity(external_id=external_id, display_name=name), is_operator=is_operator)


@pytest.fixture()
def operator():
    return make_participant(OPERATOR_ID, 'Ray', is_operator=True)


@pytest.fixture()
def alice():
    return make_participant(1, 'Alice')


@pytest.fixture()
def bob():
    return make_participant(2, 'Bob')
