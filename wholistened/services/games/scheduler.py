import time
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from wholistened import db
from wholistened.errors import NotFoundError, PermissionDeniedError, StateConflictError
from wholistened.models import Answer, Room, RoomPlayer, Round, Track
from .pool import build_track_pool, clear_room_pool
from .scoring import score_round
from .selector import owner_distribution
from .state import GameState

LIGHTNING_EVERY = 5
TICK_SEC = 1


def is_lightning_round(round_number: int) -> bool:
    return round_number > 0 and round_number % LIGHTNING_EVERY == 0


def round_time_limit(duration: int, lightning: bool) -> int:
    return max(1, duration // 2) if lightning else duration


class RoundScheduler:
    """Drives each room through waiting -> question -> results -> finished.

    - Every read-check-mutate on a room's GameState runs under that room's lock
    - Only one timer handle per room is outstanding; it lives on the GameState
    - Fired callbacks re-check the state they were scheduled for and no-op if stale
    - Callback failures are logged; the room stays in its last state
    """

    def __init__(self, app, store, timers, notifier, track_supplier, selector) -> None:
        self.app = app
        self.store = store
        self.timers = timers
        self.notifier = notifier
        self.track_supplier = track_supplier
        self.selector = selector

    @property
    def logger(self):
        return self.app.logger

    def _cfg(self, key: str, default):
        return type(default)(self.app.config.get(key, default))

    @contextmanager
    def _app_scope(self):
        if has_app_context() and current_app._get_current_object() is self.app:
            yield
        else:
            with self.app.app_context():
                yield

    # ---- lookups ----

    def _room(self, room_code: str) -> Room:
        room = Room.query.filter_by(code=room_code).first()
        if not room:
            raise NotFoundError('Room not found')
        return room

    def _require_host(self, room: Room, requester_id) -> None:
        if requester_id is None or room.host_user_id != requester_id:
            raise PermissionDeniedError('Only the host can do that')

    # ---- timers ----

    def _schedule(self, room_code: str, state: GameState, delay: float, expected_status: str,
                  action: Callable[[str, GameState], None]) -> None:
        expected_round = state.current_round
        if state.timer is not None:
            state.timer.cancel()

        def _fire():
            self._fire(room_code, state, expected_status, expected_round, action)

        state.timer = self.timers.schedule(room_code, delay, _fire)
        self.logger.info(f"[timer-set] room={room_code} status={expected_status} round={expected_round} delay={delay}s")

    def _fire(self, room_code: str, expected_state: GameState, expected_status: str, expected_round: int,
              action: Callable[[str, GameState], None]) -> None:
        with self._app_scope():
            try:
                with self.store.lock(room_code):
                    state = self.store.get(room_code)
                    if (state is not expected_state or state.status != expected_status
                            or state.current_round != expected_round):
                        self.logger.info(f"[timer-abort] room={room_code} expected={expected_status}/{expected_round} stale")
                        return
                    self.logger.info(f"[timer-fire] room={room_code} status={expected_status} round={expected_round}")
                    action(room_code, state)
            except Exception:
                db.session.rollback()
                self.logger.exception(f"[timer-error] room={room_code} status={expected_status} round={expected_round}")

    @staticmethod
    def _cancel_timer(state: Optional[GameState]) -> None:
        if state is not None and state.timer is not None:
            state.timer.cancel()
            state.timer = None

    # ---- transitions ----

    def start_game(self, room_code: str, requester_id) -> GameState:
        room = self._room(room_code)
        self._require_host(room, requester_id)
        if room.status == 'playing':
            raise StateConflictError('Game already in progress')

        roster = RoomPlayer.query.filter_by(room_id=room.id).order_by(RoomPlayer.id).all()
        min_players = self._cfg('MIN_PLAYERS', 2)
        if len(roster) < min_players:
            raise StateConflictError(f'At least {min_players} players are required to start')
        unlinked = [p.user.display_name for p in roster if not p.user.account_connected]
        if unlinked:
            raise StateConflictError(f"All players must link their music account. Not linked: {', '.join(unlinked)}")

        with self.store.lock(room_code):
            # Another start may have won the lock while this one was validating
            db.session.refresh(room)
            current = self.store.get(room_code)
            if room.status == 'playing' or (current is not None and current.status != 'finished'):
                raise StateConflictError('Game already in progress')
            self._cancel_timer(current)
            for player in roster:
                player.total_score = 0
                db.session.add(player)
            tracks = build_track_pool(
                room,
                roster,
                self.track_supplier,
                timeout=self._cfg('TRACK_FETCH_TIMEOUT_SEC', 10.0),
                logger=self.logger,
                rng=self.selector.rng,
            )
            room.status = 'playing'
            room.current_round = 0
            db.session.add(room)
            db.session.commit()

            state = GameState(time_limit=room.round_duration, seconds_remaining=room.round_duration)
            state.tracks_by_owner = owner_distribution(tracks)
            self.store.set(room_code, state)
            self.logger.info(f"[game-start] room={room_code} players={len(roster)} pool={len(tracks)}")
            self.notifier.notify_room(room_code, 'game_started', {
                'total_rounds': room.total_rounds,
                'player_count': len(roster),
                'pool_size': len(tracks),
            })
            self._schedule(room_code, state, self._cfg('GAME_START_DELAY_SEC', 3), 'waiting', self._start_next_round)
        return state

    def start_next_round(self, room_code: str) -> Optional[Round]:
        with self.store.lock(room_code):
            state = self.store.get(room_code)
            if state is None:
                return None
            return self._start_next_round(room_code, state)

    def _start_next_round(self, room_code: str, state: GameState) -> Optional[Round]:
        room = Room.query.filter_by(code=room_code).first()
        if room is None:
            return None
        next_round = state.current_round + 1
        if next_round > (room.total_rounds or 0):
            self._finish(room, state)
            return None

        pool = Track.query.filter_by(room_id=room.id).order_by(Track.id).all()
        used_before, owner_before = set(state.used_track_ids), state.owner_index
        track = self.selector.select(pool, state, next_round)
        if track is None:
            self._finish(room, state)
            return None

        lightning = is_lightning_round(next_round)
        time_limit = round_time_limit(room.round_duration, lightning)
        try:
            round_ = Round(
                room_id=room.id,
                round_number=next_round,
                track_id=track.id,
                is_lightning=lightning,
                time_limit=time_limit,
                started_at=datetime.utcnow(),
            )
            # Answer key is copied now so later pool changes cannot rewrite it
            round_.correct_user_ids = track.listener_ids
            room.current_round = next_round
            db.session.add(round_)
            db.session.add(room)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            state.used_track_ids, state.owner_index = used_before, owner_before
            raise

        state.current_round = next_round
        state.status = 'question'
        state.active_track_id = track.id
        state.time_limit = time_limit
        state.seconds_remaining = time_limit
        state.round_started_at = time.time()
        state.answered = set()
        state.is_lightning = lightning

        self.logger.info(f"[round-start] room={room_code} round={next_round}/{room.total_rounds} track={track.id} lightning={lightning} limit={time_limit}s")
        self.notifier.notify_room(room_code, 'round_started', {
            'round': next_round,
            'total_rounds': room.total_rounds,
            'is_lightning_round': lightning,
            'time_limit': time_limit,
            'track': track.to_dict(),
        })
        self._schedule(room_code, state, TICK_SEC, 'question', self._tick)
        return round_

    def _tick(self, room_code: str, state: GameState) -> None:
        state.seconds_remaining = max(0, state.seconds_remaining - TICK_SEC)
        if state.seconds_remaining <= 0:
            state.timer = None
            self._end_round(room_code, state)
            return
        self._schedule(room_code, state, TICK_SEC, 'question', self._tick)

    def end_round(self, room_code: str, expected_round: Optional[int] = None) -> bool:
        """Close the open round once; later or concurrent calls are no-ops.

        Returns True only for the call that actually ended the round. Errors
        are logged and leave the room where it is.
        """
        with self._app_scope():
            try:
                with self.store.lock(room_code):
                    state = self.store.get(room_code)
                    if state is None or state.status != 'question':
                        return False
                    if expected_round is not None and state.current_round != expected_round:
                        return False
                    self._end_round(room_code, state)
                    return True
            except Exception:
                db.session.rollback()
                self.logger.exception(f"[round-end-error] room={room_code}")
                return False

    def _end_round(self, room_code: str, state: GameState) -> None:
        self._cancel_timer(state)
        state.status = 'results'

        room = Room.query.filter_by(code=room_code).first()
        if room is None:
            return
        round_ = Round.latest_for_room(room.id)
        if round_ is None:
            return
        answers = Answer.for_round(round_.id)
        roster = RoomPlayer.query.filter_by(room_id=room.id).order_by(RoomPlayer.id).all()
        scored = score_round(round_, answers, roster, state)
        round_.ended_at = datetime.utcnow()
        db.session.add(round_)
        db.session.commit()

        answers_by_user = {a.user_id: a for a in answers}
        results = []
        for player in roster:
            answer = answers_by_user.get(player.user_id)
            result = scored.get(player.user_id)
            results.append({
                'user_id': player.user_id,
                'display_name': player.user.display_name if player.user else None,
                'answered': answer is not None,
                'selected_user_ids': answer.selected_user_ids if answer else [],
                'is_correct': bool(answer and answer.is_correct),
                'is_partial_correct': bool(answer and answer.is_partial_correct),
                'score': result.score if result else (answer.score if answer else 0),
                'total_score': player.total_score or 0,
                'streak': state.streak_for(player.user_id),
            })

        self.logger.info(f"[round-end] room={room_code} round={round_.round_number} answers={len(answers)}/{len(roster)}")
        self.notifier.notify_room(room_code, 'round_ended', {
            'round': round_.round_number,
            'correct_user_ids': round_.correct_user_ids,
            'is_lightning_round': round_.is_lightning,
            'results': results,
        })
        self._schedule(room_code, state, self._cfg('RESULTS_DURATION_SEC', 5), 'results', self._start_next_round)

    def _finish(self, room: Room, state: GameState) -> None:
        self._cancel_timer(state)
        state.status = 'finished'
        room.status = 'finished'
        db.session.add(room)
        db.session.commit()
        self.logger.info(f"[finish] room={room.code} finished at round={state.current_round}")
        self.notifier.notify_room(room.code, 'game_finished', {'round': state.current_round})

    # ---- lobby ----

    def return_to_lobby(self, room_code: str, requester_id) -> None:
        room = self._room(room_code)
        self._require_host(room, requester_id)
        with self.store.lock(room_code):
            room.status = 'waiting'
            room.current_round = 0
            db.session.add(room)
            db.session.commit()
            self._cancel_timer(self.store.delete(room_code))
        self.notifier.notify_room(room_code, 'return_to_lobby')

    def rematch(self, room_code: str, requester_id) -> None:
        room = self._room(room_code)
        self._require_host(room, requester_id)
        with self.store.lock(room_code):
            for player in RoomPlayer.query.filter_by(room_id=room.id).all():
                player.total_score = 0
                db.session.add(player)
            clear_room_pool(room.id)
            room.status = 'waiting'
            room.current_round = 0
            db.session.add(room)
            db.session.commit()
            self._cancel_timer(self.store.delete(room_code))
        self.logger.info(f"[rematch] room={room_code}")
        self.notifier.notify_room(room_code, 'rematch_started')
