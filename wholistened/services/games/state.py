from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import RLock
from weakref import WeakValueDictionary
from typing import Any, Dict, List, Literal, Optional, Set


GameStatus = Literal["waiting", "question", "results", "finished"]


@dataclass
class GameState:
    """Live coordination record for one room's running game (never persisted)."""
    status: GameStatus = "waiting"
    current_round: int = 0
    seconds_remaining: int = 0
    time_limit: int = 0
    active_track_id: Optional[int] = None
    round_started_at: Optional[float] = None
    answered: Set[int] = field(default_factory=set)
    used_track_ids: Set[int] = field(default_factory=set)
    streaks: Dict[int, int] = field(default_factory=dict)
    is_lightning: bool = False
    # Owner fairness: primary listener -> track ids, and the rotation cursor
    tracks_by_owner: Dict[int, List[int]] = field(default_factory=dict)
    owner_index: int = -1
    timer: Any = None

    def streak_for(self, user_id: int) -> int:
        return self.streaks.get(user_id, 0)


class RoomGameStateStore:
    """In-memory registry: room code -> GameState, plus a lock per room.

    Only one process may own a room; there is no cross-process coordination.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._states: Dict[str, GameState] = {}
        # A room lock lives only while some caller holds or waits on it
        self._room_locks: WeakValueDictionary = WeakValueDictionary()

    def get(self, room_code: str) -> Optional[GameState]:
        with self._lock:
            return self._states.get(room_code)

    def set(self, room_code: str, state: GameState) -> GameState:
        with self._lock:
            self._states[room_code] = state
            return state

    def delete(self, room_code: str) -> Optional[GameState]:
        with self._lock:
            return self._states.pop(room_code, None)

    def room_codes(self) -> List[str]:
        with self._lock:
            return list(self._states.keys())

    @contextmanager
    def lock(self, room_code: str):
        """Hold the per-room mutex for a read-check-mutate sequence."""
        with self._lock:
            room_lock = self._room_locks.setdefault(room_code, RLock())
        with room_lock:
            yield
