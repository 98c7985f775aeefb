"""Realtime fan-out of committed room changes to subscribed clients."""

from flask import current_app

SOCKET_NAMESPACE = '/ws'


def socket_room(room_code):
    return f"room:{room_code}"


class RoomNotifier:
    """Interface: called by the controller after each committed write."""

    def room_changed(self, room_code, event, payload=None):
        raise NotImplementedError


class SocketIONotifier(RoomNotifier):
    def __init__(self, socketio):
        self.socketio = socketio

    def room_changed(self, room_code, event, payload=None):
        message = {'room_code': room_code, 'event': event}
        if payload:
            message.update(payload)
        try:
            self.socketio.emit('room_update', message, to=socket_room(room_code), namespace=SOCKET_NAMESPACE)
        except Exception:
            # The write already committed; subscribers can still poll the state endpoint
            current_app.logger.exception(f"[notify-failed] room={room_code} event={event}")
