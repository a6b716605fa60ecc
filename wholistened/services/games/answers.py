from typing import Iterable

from sqlalchemy.exc import IntegrityError

from wholistened import db
from wholistened.errors import NotFoundError, PermissionDeniedError, StateConflictError, ValidationError
from wholistened.models import Answer, Room, RoomPlayer, Round


def _normalize_selection(selected_ids) -> list:
    if selected_ids is None:
        return []
    if not isinstance(selected_ids, (list, tuple, set)):
        raise ValidationError('selected_user_ids must be a list')
    normalized = []
    for raw in selected_ids:
        if isinstance(raw, bool):
            raise ValidationError('selected_user_ids must contain player ids')
        try:
            user_id = int(raw)
        except (TypeError, ValueError):
            raise ValidationError('selected_user_ids must contain player ids')
        if user_id not in normalized:
            normalized.append(user_id)
    return normalized


class AnswerCollector:
    """Accepts one answer per player per round and ends the round early
    once every player on the roster has answered."""

    def __init__(self, store, scheduler, notifier) -> None:
        self.store = store
        self.scheduler = scheduler
        self.notifier = notifier

    def submit_answer(self, room_code: str, user_id: int, selected_ids: Iterable[int]) -> Answer:
        selection = _normalize_selection(selected_ids)
        room = Room.query.filter_by(code=room_code).first()
        if not room:
            raise NotFoundError('Room not found')

        with self.store.lock(room_code):
            state = self.store.get(room_code)
            if state is None or state.status != 'question':
                raise StateConflictError('Cannot answer now')
            if user_id in state.answered:
                raise StateConflictError('Already answered')

            roster = RoomPlayer.query.filter_by(room_id=room.id).all()
            if not any(p.user_id == user_id for p in roster):
                raise PermissionDeniedError('You are not in this room')

            round_ = Round.latest_for_room(room.id)
            if round_ is None or round_.ended_at is not None or round_.round_number != state.current_round:
                raise StateConflictError('No active round')

            answer = Answer(round_id=round_.id, user_id=user_id)
            answer.selected_user_ids = selection
            db.session.add(answer)
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                raise StateConflictError('Already answered')

            # In-memory bookkeeping only after the row is stored
            state.answered.add(user_id)
            self.notifier.notify_room(room_code, 'player_answered', {
                'user_id': user_id,
                'answered_count': len(state.answered),
                'player_count': len(roster),
            })

            if len(state.answered) >= len(roster):
                self.scheduler.end_round(room_code, expected_round=state.current_round)
        return answer
