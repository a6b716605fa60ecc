from flask import current_app, request
from flask_socketio import join_room, leave_room, emit
from wholistened import socketio
from wholistened.services.notifier import NAMESPACE, room_channel
from typing import Dict, Any
import time

ALLOWED_REACTIONS = {'🔥', '😂', '😮', '👏', '🎵', '❤️'}


def _room_code(data: Dict[str, Any]) -> str:
    return str((data or {}).get('room_code') or '').strip().upper()


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(reason=None):
    # Room subscriptions are dropped by Socket.IO itself; game state is untouched
    current_app.logger.info(f"[ws-disconnect] sid={getattr(request, 'sid', None)} reason={reason}")


def handle_join_room(data):
    room_code = _room_code(data)
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    join_room(room_channel(room_code))
    emit('joined', {'room_code': room_code})


def handle_leave_room(data):
    room_code = _room_code(data)
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    leave_room(room_channel(room_code))
    emit('left', {'room_code': room_code})


def handle_reaction(data):
    room_code = _room_code(data)
    emoji = (data or {}).get('emoji')
    if not room_code or emoji not in ALLOWED_REACTIONS:
        emit('error', {'message': 'room_code and a supported emoji are required'})
        return
    emit('reaction', {
        'room_code': room_code,
        'user_id': (data or {}).get('user_id'),
        'display_name': (data or {}).get('display_name'),
        'emoji': emoji,
        'timestamp': int(time.time() * 1000),
    }, to=room_channel(room_code))


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
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_room', handle_join_room, namespace=namespace)
        socketio.on_event('leave_room', handle_leave_room, namespace=namespace)
        socketio.on_event('reaction', handle_reaction, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
