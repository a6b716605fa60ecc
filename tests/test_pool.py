import logging
import random
import threading

from wholistened import db
from wholistened.models import AccountLink, Room, RoomPlayer, Track, User
from wholistened.services.games.pool import (
    FALLBACK_CATALOG,
    build_track_pool,
    fetch_all,
    merge_candidates,
)
from wholistened.services.tracks import CandidateTrack, PlayerCredential, StaticTrackSupplier, TrackSupplier

logger = logging.getLogger('tests.pool')


def _track(external_id, name=None):
    return CandidateTrack(external_id=external_id, name=name or external_id.title(), artist='Artist')


class FailingSupplier(TrackSupplier):
    def __init__(self, failing_ids, catalog):
        self.failing_ids = set(failing_ids)
        self.inner = StaticTrackSupplier(catalog)

    def fetch_candidate_tracks(self, credential):
        if credential.user_id in self.failing_ids:
            raise RuntimeError('provider unavailable')
        return self.inner.fetch_candidate_tracks(credential)


class BlockingSupplier(TrackSupplier):
    def __init__(self, blocked_id, catalog):
        self.blocked_id = blocked_id
        self.release = threading.Event()
        self.inner = StaticTrackSupplier(catalog)

    def fetch_candidate_tracks(self, credential):
        if credential.user_id == self.blocked_id:
            self.release.wait(5)
        return self.inner.fetch_candidate_tracks(credential)


def _room_with_players(count=2):
    room = Room(code='654321', name='Pool Room')
    db.session.add(room)
    users = [User(display_name=f'P{i}', unique_name=f'P{i}') for i in range(count)]
    db.session.add_all(users)
    db.session.flush()
    roster = [RoomPlayer(room_id=room.id, user_id=u.id) for u in users]
    db.session.add_all(roster)
    db.session.commit()
    return room, roster


def test_merge_unions_listeners_and_keeps_first_metadata():
    merged = merge_candidates([
        (1, [_track('a', 'First Name'), _track('b')]),
        (2, [_track('a', 'Second Name'), _track('c')]),
    ])
    assert set(merged) == {'a', 'b', 'c'}
    track, listeners = merged['a']
    assert track.name == 'First Name'
    assert listeners == [1, 2]
    assert merged['b'][1] == [1]
    assert merged['c'][1] == [2]


def test_merge_ignores_duplicates_within_one_player():
    merged = merge_candidates([(1, [_track('a'), _track('a')])])
    assert merged['a'][1] == [1]


def test_fetch_all_isolates_failures():
    supplier = FailingSupplier({2}, {1: [_track('a')], 2: [_track('b')]})
    results = fetch_all([PlayerCredential(1, 't1'), PlayerCredential(2, 't2')], supplier, 2.0, logger)
    assert [user_id for user_id, _ in results] == [1]


def test_fetch_all_drops_players_past_the_deadline():
    supplier = BlockingSupplier(2, {1: [_track('a')], 2: [_track('b')]})
    try:
        results = fetch_all([PlayerCredential(1, 't1'), PlayerCredential(2, 't2')], supplier, 0.2, logger)
    finally:
        supplier.release.set()
    assert results == [(1, [_track('a')])]


def test_fetch_all_with_no_credentials():
    assert fetch_all([], StaticTrackSupplier(), 1.0, logger) == []


def test_build_pool_persists_merged_tracks(flask_app):
    room, roster = _room_with_players(2)
    for player in roster:
        db.session.add(AccountLink(user_id=player.user_id, provider='spotify', access_token='tok'))
    db.session.commit()
    a, b = roster[0].user_id, roster[1].user_id
    supplier = StaticTrackSupplier({a: [_track('x'), _track('y')], b: [_track('y')]})

    tracks = build_track_pool(room, roster, supplier, 2.0, logger)

    by_external = {t.external_id: t for t in tracks}
    assert set(by_external) == {'x', 'y'}
    assert by_external['x'].listener_ids == [a]
    assert by_external['y'].listener_ids == [a, b]
    assert Track.query.filter_by(room_id=room.id).count() == 2


def test_build_pool_falls_back_when_nobody_has_tracks(flask_app):
    room, roster = _room_with_players(3)
    tracks = build_track_pool(room, roster, StaticTrackSupplier(), 1.0, logger, rng=random.Random(4))

    assert len(tracks) == len(FALLBACK_CATALOG)
    roster_ids = {p.user_id for p in roster}
    for track in tracks:
        assert track.listener_ids
        assert set(track.listener_ids) <= roster_ids


def test_build_pool_replaces_previous_pool(flask_app):
    room, roster = _room_with_players(2)
    build_track_pool(room, roster, StaticTrackSupplier(), 1.0, logger, rng=random.Random(1))
    build_track_pool(room, roster, StaticTrackSupplier(), 1.0, logger, rng=random.Random(2))
    assert Track.query.filter_by(room_id=room.id).count() == len(FALLBACK_CATALOG)
