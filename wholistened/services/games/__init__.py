"""Game domain services: track pool, selection, rounds, answers and scoring.

This package contains the game-loop logic that HTTP routes and socket
handlers call into, keeping transport concerns separated from core game
mechanics. ``build_game_services`` wires one instance of each per app.
"""
from dataclasses import dataclass

from .answers import AnswerCollector
from .scheduler import RoundScheduler
from .selector import TrackSelector
from .state import GameState, RoomGameStateStore


@dataclass
class GameServices:
    store: RoomGameStateStore
    scheduler: RoundScheduler
    collector: AnswerCollector
    notifier: object


def build_game_services(app, timers, notifier, track_supplier, selector=None) -> GameServices:
    store = RoomGameStateStore()
    selector = selector or TrackSelector(policy=app.config.get('TRACK_SELECTION_POLICY', 'alternating'))
    scheduler = RoundScheduler(app, store, timers, notifier, track_supplier, selector)
    collector = AnswerCollector(store, scheduler, notifier)
    return GameServices(store=store, scheduler=scheduler, collector=collector, notifier=notifier)


__all__ = ['GameServices', 'GameState', 'RoomGameStateStore', 'build_game_services']
