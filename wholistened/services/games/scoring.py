from dataclasses import dataclass
from typing import Dict, Iterable, Sequence

from wholistened import db
from wholistened.models import Answer, Round, RoomPlayer
from .state import GameState

POINTS_PER_LISTENER = 5
LIGHTNING_MULTIPLIER = 2
STREAK_THRESHOLD = 3
STREAK_BONUS = 10


@dataclass(frozen=True)
class AnswerScore:
    correct_count: int
    wrong_count: int
    is_correct: bool
    is_partial_correct: bool
    streak: int
    score: int


def score_answer(selected: Iterable[int], correct: Iterable[int], is_lightning: bool, previous_streak: int) -> AnswerScore:
    """Score one selection against the round's listener set.

    +5 per correct pick, -5 per wrong pick, doubled in lightning rounds.
    A correct-or-partial answer extends the streak; from the third in a row
    on it earns a flat +10 that is not doubled.
    """
    selected_set = set(selected)
    correct_set = set(correct)
    correct_count = len(selected_set & correct_set)
    wrong_count = len(selected_set - correct_set)

    score = correct_count * POINTS_PER_LISTENER - wrong_count * POINTS_PER_LISTENER
    if is_lightning:
        score *= LIGHTNING_MULTIPLIER

    is_correct = selected_set == correct_set
    is_partial_correct = correct_count > 0 and not is_correct

    if is_correct or is_partial_correct:
        streak = previous_streak + 1
        if streak >= STREAK_THRESHOLD:
            score += STREAK_BONUS
    else:
        streak = 0

    return AnswerScore(
        correct_count=correct_count,
        wrong_count=wrong_count,
        is_correct=is_correct,
        is_partial_correct=is_partial_correct,
        streak=streak,
        score=score,
    )


def score_round(round_: Round, answers: Sequence[Answer], roster: Sequence[RoomPlayer], state: GameState) -> Dict[int, AnswerScore]:
    """Apply scoring for a closed round.

    Updates each Answer row, each answering player's cumulative total and the
    streak map. Players without an Answer are left alone. Answers that already
    carry a classification are skipped, so a second pass changes nothing.
    """
    correct = round_.correct_user_ids
    players_by_user = {p.user_id: p for p in roster}
    results: Dict[int, AnswerScore] = {}

    for answer in answers:
        if answer.is_correct is not None:
            continue
        result = score_answer(
            answer.selected_user_ids,
            correct,
            round_.is_lightning,
            state.streak_for(answer.user_id),
        )
        answer.is_correct = result.is_correct
        answer.is_partial_correct = result.is_partial_correct
        answer.score = result.score
        db.session.add(answer)

        player = players_by_user.get(answer.user_id)
        if player is not None:
            player.total_score = (player.total_score or 0) + result.score
            db.session.add(player)
        results[answer.user_id] = result

    db.session.commit()
    # Streaks only move once the scores are stored
    for user_id, result in results.items():
        state.streaks[user_id] = result.streak
    return results
