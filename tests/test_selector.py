import random
from types import SimpleNamespace

import pytest

from wholistened.services.games.selector import (
    POLICY_OWNER_ROUND_ROBIN,
    TrackSelector,
    owner_distribution,
    select_track,
)
from wholistened.services.games.state import GameState


def _track(track_id, *listeners):
    return SimpleNamespace(id=track_id, listener_ids=list(listeners))


@pytest.fixture()
def pool():
    return [
        _track(1, 10),
        _track(2, 10, 20),
        _track(3, 20),
        _track(4, 30),
        _track(5, 20, 30),
    ]


def test_empty_pool_returns_none():
    used = set()
    assert select_track([], used, 1) is None
    assert used == set()


def test_no_repeat_until_pool_exhausted(pool):
    rng = random.Random(7)
    used = set()
    picked = [select_track(pool, used, n, rng=rng).id for n in range(1, len(pool) + 1)]
    assert sorted(picked) == [1, 2, 3, 4, 5]
    assert used == {1, 2, 3, 4, 5}


def test_wraps_around_after_exhaustion(pool):
    rng = random.Random(3)
    used = {1, 2, 3, 4, 5}
    chosen = select_track(pool, used, 1, rng=rng)
    assert chosen is not None
    assert used == {chosen.id}


def test_even_rounds_prefer_shared_tracks(pool):
    for seed in range(20):
        used = set()
        chosen = select_track(pool, used, 2, rng=random.Random(seed))
        assert len(chosen.listener_ids) >= 2


def test_even_round_falls_back_when_no_shared_track_left(pool):
    used = {2, 5}
    chosen = select_track(pool, used, 4, rng=random.Random(1))
    assert chosen.id in {1, 3, 4}


def test_odd_rounds_draw_from_whole_remainder(pool):
    seen = set()
    for seed in range(50):
        seen.add(select_track(pool, set(), 1, rng=random.Random(seed)).id)
    assert seen == {1, 2, 3, 4, 5}


def test_owner_distribution_uses_first_listener(pool):
    assert owner_distribution(pool) == {10: [1, 2], 20: [3, 5], 30: [4]}


def test_round_robin_rotates_owners():
    pool = [_track(1, 10), _track(2, 10), _track(3, 20), _track(4, 30)]
    state = GameState(tracks_by_owner=owner_distribution(pool))
    selector = TrackSelector(POLICY_OWNER_ROUND_ROBIN, rng=random.Random(0))
    owners = [selector.select(pool, state, n).listener_ids[0] for n in (1, 3, 5)]
    assert owners == [10, 20, 30]


def test_round_robin_never_repeats_before_exhaustion():
    pool = [_track(i, 10 + i % 3) for i in range(1, 7)]
    state = GameState(tracks_by_owner=owner_distribution(pool))
    selector = TrackSelector(POLICY_OWNER_ROUND_ROBIN, rng=random.Random(5))
    picked = [selector.select(pool, state, n).id for n in range(1, 7)]
    assert sorted(picked) == [1, 2, 3, 4, 5, 6]


def test_selector_rejects_unknown_policy():
    with pytest.raises(ValueError):
        TrackSelector('shuffle')
