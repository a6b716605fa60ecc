from typing import Optional

from wholistened.models import Answer, Room, RoomPlayer, Round
from .state import GameState

REVEAL_STATUSES = ('results', 'finished')


def _last_scored_answers(room_id: int) -> dict:
    closed = (
        Round.query.filter(Round.room_id == room_id, Round.ended_at.isnot(None))
        .order_by(Round.round_number.desc(), Round.id.desc())
        .first()
    )
    if closed is None:
        return {}
    return {a.user_id: a for a in Answer.for_round(closed.id)}


def game_snapshot(room: Room, state: Optional[GameState]) -> dict:
    """Read model of a room's current game.

    The answer key is only included once the round is closed.
    """
    round_ = Round.latest_for_room(room.id) if room.current_round else None
    reveal = state is not None and state.status in REVEAL_STATUSES

    track = None
    if round_ is not None and round_.track is not None:
        track = round_.track.to_dict()
        if reveal:
            track['listener_ids'] = round_.correct_user_ids

    last_answers = _last_scored_answers(room.id)

    players = []
    for player in room.players:
        last = last_answers.get(player.user_id)
        players.append({
            'user_id': player.user_id,
            'display_name': player.user.display_name if player.user else None,
            'avatar_url': player.user.avatar_url if player.user else None,
            'total_score': player.total_score or 0,
            'answered': state is not None and state.status == 'question' and player.user_id in state.answered,
            'streak': state.streak_for(player.user_id) if state is not None else 0,
            'last_answer': last.to_dict() if last is not None else None,
        })

    game = None
    if state is not None:
        game = {
            'status': state.status,
            'current_round': state.current_round,
            'total_rounds': room.total_rounds,
            'seconds_remaining': state.seconds_remaining,
            'time_limit': state.time_limit,
            'is_lightning_round': state.is_lightning,
            'streaks': {str(uid): streak for uid, streak in state.streaks.items()},
        }

    return {
        'room': room.to_dict(include_players=False),
        'game': game,
        'track': track,
        'players': players,
    }


def final_standings(room: Room) -> dict:
    roster = RoomPlayer.query.filter_by(room_id=room.id).all()
    round_ids = [r.id for r in Round.query.filter_by(room_id=room.id).all()]
    answers = Answer.query.filter(Answer.round_id.in_(round_ids)).all() if round_ids else []
    correct, partial = {}, {}
    for a in answers:
        if a.is_correct:
            correct[a.user_id] = correct.get(a.user_id, 0) + 1
        elif a.is_partial_correct:
            partial[a.user_id] = partial.get(a.user_id, 0) + 1

    ordered = sorted(roster, key=lambda p: (-(p.total_score or 0), p.id))
    return {
        'room_name': room.name,
        'total_rounds': room.total_rounds,
        'host_user_id': room.host_user_id,
        'players': [
            {
                'rank': index + 1,
                'user_id': p.user_id,
                'display_name': p.user.display_name if p.user else None,
                'unique_name': p.user.unique_name if p.user else None,
                'avatar_url': p.user.avatar_url if p.user else None,
                'total_score': p.total_score or 0,
                'correct_answers': correct.get(p.user_id, 0),
                'partial_answers': partial.get(p.user_id, 0),
            }
            for index, p in enumerate(ordered)
        ],
    }
