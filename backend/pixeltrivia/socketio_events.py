from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from pixeltrivia import socketio
from pixeltrivia.errors import AppError
from pixeltrivia.services.rooms.codes import is_valid_room_code, normalize_room_code
from pixeltrivia.services.rooms.notifier import SOCKET_NAMESPACE, socket_room
from pixeltrivia.services.rooms.store import RoomStore


def handle_connect():
    emit('connected', {'message': f'Connected to {SOCKET_NAMESPACE}'})


def handle_disconnect(*args):
    current_app.logger.debug(f"[ws-disconnect] sid={request.sid}")


def _room_code(data):
    code = normalize_room_code((data or {}).get('room_code'))
    if not is_valid_room_code(code):
        emit('error', {'error': 'room_code is required', 'code': 'VALIDATION_ERROR'})
        return None
    return code


def handle_join_room(data):
    """Subscribe this socket to a room's updates and send the current snapshot."""
    code = _room_code(data)
    if code is None:
        return
    try:
        room = RoomStore.from_config(current_app.config).require_room(code)
    except AppError as exc:
        emit('error', exc.to_dict())
        return
    room_name = socket_room(code)
    join_room(room_name)
    current_app.logger.info(f"[ws-join] sid={request.sid} room={code}")
    emit('joined', {'room': room_name, 'state': room.to_dict(include_players=True)})


def handle_leave_room(data):
    code = _room_code(data)
    if code is None:
        return
    room_name = socket_room(code)
    leave_room(room_name)
    emit('left', {'room': room_name})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on the '/ws' namespace. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [SOCKET_NAMESPACE] + (['/'] if testing else [])
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_room', handle_join_room, namespace=namespace)
        socketio.on_event('leave_room', handle_leave_room, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
