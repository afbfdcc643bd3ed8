import importlib
import threading

import pytest

from rayguess import create_app, socketio
from rayguess.identity import sign_init_data

from conftest import BOT_TOKEN, OPERATOR_ID, ProductionTestConfig, received


def _login(test_client, user_id, name):
    init_data = sign_init_data(BOT_TOKEN, {'id': user_id, 'first_name': name})
    test_client.emit('authenticate', {'init_data': init_data}, namespace='/ws')
    result = received(test_client, 'authentication_result')
    assert result and result[0]['ok'] is True
    return result[0]['participant']


@pytest.fixture()
def players(sio_factory):
    operator, alice, bob = sio_factory(), sio_factory(), sio_factory()
    _login(operator, OPERATOR_ID, 'Ray')
    _login(alice, 1, 'Alice')
    _login(bob, 2, 'Bob')
    return operator, alice, bob


def test_socket_connect_greets(flask_app):
    test_client = socketio.test_client(flask_app, namespace='/ws')
    assert test_client.is_connected('/ws')
    names = [pkt['name'] for pkt in test_client.get_received('/ws')]
    assert 'connected' in names
    test_client.disconnect(namespace='/ws')


def test_authenticate_with_signed_data(sio_factory):
    participant = _login(sio_factory(), 1, 'Alice')
    assert participant['id'] == 1
    assert participant['is_operator'] is False


def test_forged_login_is_refused(sio_factory):
    test_client = sio_factory()
    forged = sign_init_data('some-other-bot', {'id': OPERATOR_ID, 'first_name': 'Mallory'})
    test_client.emit('authenticate', {'init_data': forged}, namespace='/ws')
    result = received(test_client, 'authentication_result')[0]
    assert result['ok'] is False
    assert result['error']['kind'] == 'signature_mismatch'


def test_round_lifecycle_broadcasts(players):
    operator, alice, bob = players

    operator.emit('create_round', {'lat': 52.0, 'lng': 5.0}, namespace='/ws')
    assert received(operator, 'round_created')[0]['secret_location'] == {'lat': 52.0, 'lng': 5.0}
    for viewer in (alice, bob):
        created = received(viewer, 'round_created')[0]
        assert created['kind'] == 'hidden'
        assert 'secret_location' not in created

    alice.emit('submit_guess', {'lat': 51.9, 'lng': 5.0}, namespace='/ws')
    assert received(alice, 'guess_submitted')[0]['location'] == {'lat': 51.9, 'lng': 5.0}
    assert received(operator, 'guess_submitted')[0]['guess']['location'] == {'lat': 51.9, 'lng': 5.0}
    signal = received(bob, 'guess_submitted')[0]
    assert signal['submitter_name'] == 'Alice'
    assert 'guess' not in signal and 'location' not in signal

    bob.emit('submit_guess', {'lat': 52.0, 'lng': 5.1}, namespace='/ws')
    for test_client in (operator, alice, bob):
        test_client.get_received('/ws')

    operator.emit('end_round', namespace='/ws')
    for test_client in (operator, alice, bob):
        closed = received(test_client, 'round_closed')[0]
        assert closed['secret_location'] == {'lat': 52.0, 'lng': 5.0}
        assert [g['submitter_name'] for g in closed['guesses']] == ['Bob', 'Alice']
        assert all(g['distance_km'] is not None for g in closed['guesses'])


def test_non_operator_create_round_errors_privately(players):
    operator, alice, bob = players
    alice.emit('create_round', {'lat': 1.0, 'lng': 1.0}, namespace='/ws')
    errors = received(alice, 'error_message')
    assert errors[0]['kind'] == 'not_authorized'
    assert operator.get_received('/ws') == []
    assert bob.get_received('/ws') == []


def test_game_state_is_censored_per_viewer(players):
    operator, alice, bob = players
    operator.emit('create_round', {'lat': 52.0, 'lng': 5.0}, namespace='/ws')
    alice.emit('submit_guess', {'lat': 51.9, 'lng': 5.0}, namespace='/ws')
    for test_client in players:
        test_client.get_received('/ws')

    alice.emit('request_game_state', namespace='/ws')
    state = received(alice, 'game_state_update')[0]
    assert state['current_round']['kind'] == 'partial_self'
    assert state['my_guess'] == {'lat': 51.9, 'lng': 5.0}

    bob.emit('request_game_state', namespace='/ws')
    state = received(bob, 'game_state_update')[0]
    assert state['current_round']['kind'] == 'hidden'
    assert state['my_guess'] is None

    operator.emit('request_game_state', namespace='/ws')
    state = received(operator, 'game_state_update')[0]
    assert state['current_round']['kind'] == 'full'


def test_logout_then_commands_need_login(players):
    _, alice, _ = players
    alice.emit('logout', namespace='/ws')
    assert received(alice, 'logged_out') == [{}]
    alice.emit('request_history', namespace='/ws')
    assert received(alice, 'error_message')[0]['kind'] == 'not_authenticated'


def test_disconnect_unbinds_session(flask_app, players):
    _, _, bob = players
    coordinator = flask_app.extensions['rayguess']
    assert coordinator.status()['sessions'] == 3
    bob.disconnect(namespace='/ws')
    assert coordinator.status()['sessions'] == 2


def test_test_login_refused_in_production():
    prod_app = create_app(ProductionTestConfig)
    with prod_app.app_context():
        test_client = socketio.test_client(prod_app, namespace='/ws')
        test_client.get_received('/ws')
        test_client.emit('test_login_operator', namespace='/ws')
        result = received(test_client, 'authentication_result')[0]
        assert result['ok'] is False
        assert result['error']['kind'] == 'test_mode_disabled'
        test_client.disconnect(namespace='/ws')


def test_default_config_refuses_test_logins(monkeypatch):
    for name in ('PRODUCTION_MODE', 'OPERATOR_TELEGRAM_ID', 'TELEGRAM_BOT_TOKEN'):
        monkeypatch.delenv(name, raising=False)
    import config
    default_config = importlib.reload(config).Config
    assert default_config.PRODUCTION_MODE is True

    default_app = create_app(default_config)
    with default_app.app_context():
        test_client = socketio.test_client(default_app, namespace='/ws')
        test_client.get_received('/ws')
        test_client.emit('test_login_operator', namespace='/ws')
        result = received(test_client, 'authentication_result')[0]
        assert result['ok'] is False
        assert result['error']['kind'] == 'test_mode_disabled'
        test_client.emit('create_round', {'lat': 1.0, 'lng': 1.0}, namespace='/ws')
        assert received(test_client, 'error_message')[0]['kind'] == 'not_authenticated'
        assert default_app.extensions['rayguess'].rounds.current_round() is None
        test_client.disconnect(namespace='/ws')


def test_fan_out_happens_under_the_command_lock(flask_app, players, monkeypatch):
    operator, _, _ = players
    lock = flask_app.extensions['rayguess'].lock
    free_during_send = []

    def recording_emit(event, *args, **kwargs):
        # another thread must not be able to commit while deliveries go out
        acquired = []

        def try_lock():
            got = lock.acquire(blocking=False)
            if got:
                lock.release()
            acquired.append(got)

        t = threading.Thread(target=try_lock)
        t.start()
        t.join()
        free_during_send.append(acquired[0])

    monkeypatch.setattr(socketio, 'emit', recording_emit)
    operator.emit('create_round', {'lat': 52.0, 'lng': 5.0}, namespace='/ws')
    # at least the deliveries to Alice and Bob; the direct reply may also route here
    assert len(free_during_send) >= 2
    assert not any(free_during_send)
