from flask_socketio import join_room, leave_room, emit
from flask import current_app
from darter import socketio

NAMESPACE = '/ws'


def match_room(match_id: str) -> str:
    return f"match:{match_id}"


def emit_match_update(match_id: str, event: str) -> None:
    """Tell spectators of a match that something changed; they re-fetch state."""
    socketio.emit('match_update', {'match_id': match_id, 'event': event},
                  to=match_room(match_id), namespace=NAMESPACE)
    current_app.logger.debug(f"[ws] match_update match={match_id} event={event}")


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_join_match(data):
    match_id = (data or {}).get('match_id')
    if not match_id:
        emit('error', {'message': 'match_id is required'})
        return
    room = match_room(match_id)
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_match(data):
    match_id = (data or {}).get('match_id')
    if not match_id:
        emit('error', {'message': 'match_id is required'})
        return
    room = match_room(match_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_match', handle_join_match, namespace=namespace)
        socketio.on_event('leave_match', handle_leave_match, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
