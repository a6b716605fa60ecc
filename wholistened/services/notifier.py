from typing import Any, Dict, Optional

NAMESPACE = '/ws'


def room_channel(room_code: str) -> str:
    return f"room:{room_code}"


class RoomNotifier:
    """Fire-and-forget fan-out of game events to a room's socket subscribers."""

    def __init__(self, socketio, namespace: str = NAMESPACE) -> None:
        self.socketio = socketio
        self.namespace = namespace

    def notify_room(self, room_code: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        data = {'room_code': room_code}
        data.update(payload or {})
        self.socketio.emit(event, data, to=room_channel(room_code), namespace=self.namespace)
