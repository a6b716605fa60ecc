"""Round subject selection.

Tracks are not repeated until every track in the pool has been used once,
after which the used set is cleared and the pool wraps around. Even rounds
prefer tracks with two or more listeners.
"""
import random
from typing import Dict, List, Optional, Sequence, Set

from .state import GameState

POLICY_ALTERNATING = 'alternating'
POLICY_OWNER_ROUND_ROBIN = 'owner_round_robin'
POLICIES = (POLICY_ALTERNATING, POLICY_OWNER_ROUND_ROBIN)


def _remaining(pool: Sequence, used_ids: Set[int]) -> List:
    candidates = [t for t in pool if t.id not in used_ids]
    if not candidates:
        used_ids.clear()
        candidates = list(pool)
    return candidates


def _shared(candidates: Sequence) -> List:
    return [t for t in candidates if len(t.listener_ids) >= 2]


def select_track(pool: Sequence, used_ids: Set[int], round_number: int, rng=None):
    """Pick the next round's track and mark it used; None only for an empty pool."""
    if not pool:
        return None
    rng = rng or random
    candidates = _remaining(pool, used_ids)
    shared = _shared(candidates) if round_number % 2 == 0 else []
    chosen = rng.choice(shared or candidates)
    used_ids.add(chosen.id)
    return chosen


def owner_distribution(pool: Sequence) -> Dict[int, List[int]]:
    """Group track ids by their primary (first-seen) listener."""
    by_owner: Dict[int, List[int]] = {}
    for track in pool:
        listeners = track.listener_ids
        if listeners:
            by_owner.setdefault(listeners[0], []).append(track.id)
    return by_owner


def select_track_round_robin(pool: Sequence, state: GameState, round_number: int, rng=None):
    """Even rounds as select_track; otherwise rotate through primary owners."""
    if not pool:
        return None
    rng = rng or random
    used_ids = state.used_track_ids
    candidates = _remaining(pool, used_ids)
    if round_number % 2 == 0:
        shared = _shared(candidates)
        if shared:
            chosen = rng.choice(shared)
            used_ids.add(chosen.id)
            return chosen

    by_id = {t.id: t for t in candidates}
    owners = [owner for owner, ids in state.tracks_by_owner.items() if any(i in by_id for i in ids)]
    if owners:
        state.owner_index = (state.owner_index + 1) % len(owners)
        owned = [by_id[i] for i in state.tracks_by_owner[owners[state.owner_index]] if i in by_id]
        chosen = rng.choice(owned)
    else:
        chosen = rng.choice(candidates)
    used_ids.add(chosen.id)
    return chosen


class TrackSelector:
    def __init__(self, policy: str = POLICY_ALTERNATING, rng: Optional[random.Random] = None) -> None:
        if policy not in POLICIES:
            raise ValueError(f"unknown track selection policy: {policy}")
        self.policy = policy
        self.rng = rng or random.Random()

    def select(self, pool: Sequence, state: GameState, round_number: int):
        if self.policy == POLICY_OWNER_ROUND_ROBIN:
            return select_track_round_robin(pool, state, round_number, rng=self.rng)
        return select_track(pool, state.used_track_ids, round_number, rng=self.rng)
