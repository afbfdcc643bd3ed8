from flask import current_app, request
from flask_socketio import emit

from rayguess import socketio
from rayguess.coordinator import GameCoordinator
from rayguess.notifications import deliver

NAMESPACE = '/ws'


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _coordinator():
    return current_app.extensions['rayguess']


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    _coordinator().disconnect(_get_sid())


def _emit(outcome) -> None:
    """Reply to the requester, then fan out deliveries."""
    if outcome.reply_event:
        emit(outcome.reply_event, outcome.reply)
    for delivery in outcome.deliveries:
        socketio.emit(delivery.event, delivery.payload, to=delivery.session, namespace=NAMESPACE)


def _run_side_effects(outcome) -> None:
    for callback, *args in outcome.side_effects:
        if current_app.config.get('TESTING'):
            deliver(callback, *args)
        else:
            socketio.start_background_task(deliver, callback, *args)


def _command_handler(command):
    def handler(data=None):
        coordinator = _coordinator()
        # emit under the command lock so every viewer sees commands in commit order
        with coordinator.lock:
            outcome = coordinator.handle(_get_sid(), command, data)
            _emit(outcome)
        _run_side_effects(outcome)
    handler.__name__ = f'handle_{command}'
    return handler


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'.

    Each game command is an event of the same name carrying an optional
    JSON payload.
    """
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    for command in GameCoordinator.COMMANDS:
        socketio.on_event(command, _command_handler(command), namespace=NAMESPACE)
