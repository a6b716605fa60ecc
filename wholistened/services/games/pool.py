"""Track pool building: per-player fetch fan-out, merge by track id, fallback catalog."""
import random
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Sequence, Tuple

from wholistened import db
from wholistened.models import Answer, Round, RoomPlayer, Track
from wholistened.services.tracks import CandidateTrack, PlayerCredential, TrackSupplier

FALLBACK_CATALOG = [
    CandidateTrack(external_id='fallback-1', name='Midnight Drive', artist='Various Artists'),
    CandidateTrack(external_id='fallback-2', name='Summer Anthem', artist='Various Artists'),
    CandidateTrack(external_id='fallback-3', name='Rainy Day Lo-Fi', artist='Various Artists'),
    CandidateTrack(external_id='fallback-4', name='Gym Playlist Banger', artist='Various Artists'),
    CandidateTrack(external_id='fallback-5', name='Karaoke Classic', artist='Various Artists'),
]


def load_credentials(roster: Sequence[RoomPlayer], logger) -> List[PlayerCredential]:
    credentials = []
    for player in roster:
        try:
            link = player.user.account_link if player.user else None
        except Exception:
            logger.exception(f"[pool] user={player.user_id} failed to load account link")
            continue
        if not link:
            logger.info(f"[pool] user={player.user_id} has no linked account, skipping")
            continue
        credentials.append(PlayerCredential(
            user_id=player.user_id,
            access_token=link.access_token,
            refresh_token=link.refresh_token,
            expired=link.is_expired,
        ))
    return credentials


def fetch_all(credentials: Sequence[PlayerCredential], supplier: TrackSupplier, timeout: float, logger) -> List[Tuple[int, List[CandidateTrack]]]:
    """Fetch every player's tracks concurrently.

    A player whose fetch raises or outlives ``timeout`` contributes nothing.
    Results keep the credential order.
    """
    if not credentials:
        return []
    executor = ThreadPoolExecutor(max_workers=len(credentials), thread_name_prefix='track-fetch')
    try:
        futures = [executor.submit(supplier.fetch_candidate_tracks, c) for c in credentials]
        wait(futures, timeout=timeout)
        results = []
        for credential, future in zip(credentials, futures):
            if not future.done():
                future.cancel()
                logger.warning(f"[pool] user={credential.user_id} track fetch timed out after {timeout}s")
                continue
            exc = future.exception()
            if exc is not None:
                logger.warning(f"[pool] user={credential.user_id} track fetch failed: {exc!r}")
                continue
            tracks = list(future.result() or [])
            logger.info(f"[pool] user={credential.user_id} fetched {len(tracks)} tracks")
            results.append((credential.user_id, tracks))
        return results
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def merge_candidates(fetched: Sequence[Tuple[int, Sequence[CandidateTrack]]]) -> Dict[str, Tuple[CandidateTrack, List[int]]]:
    """Merge per-player lists by external id; first-seen metadata wins."""
    merged: Dict[str, Tuple[CandidateTrack, List[int]]] = {}
    for user_id, tracks in fetched:
        for track in tracks:
            entry = merged.get(track.external_id)
            if entry is None:
                merged[track.external_id] = (track, [user_id])
            elif user_id not in entry[1]:
                entry[1].append(user_id)
    return merged


def fallback_pool(roster_user_ids: Sequence[int], rng=None) -> Dict[str, Tuple[CandidateTrack, List[int]]]:
    rng = rng or random
    pool = {}
    if not roster_user_ids:
        return pool
    for track in FALLBACK_CATALOG:
        count = rng.randint(1, len(roster_user_ids))
        pool[track.external_id] = (track, rng.sample(list(roster_user_ids), count))
    return pool


def clear_room_pool(room_id: int) -> None:
    """Delete the room's answers, rounds and tracks (in FK order); caller commits."""
    round_ids = [r.id for r in Round.query.filter_by(room_id=room_id).all()]
    if round_ids:
        Answer.query.filter(Answer.round_id.in_(round_ids)).delete(synchronize_session=False)
    Round.query.filter_by(room_id=room_id).delete(synchronize_session=False)
    Track.query.filter_by(room_id=room_id).delete(synchronize_session=False)


def build_track_pool(room, roster: Sequence[RoomPlayer], supplier: TrackSupplier, timeout: float, logger, rng=None) -> List[Track]:
    """Rebuild and persist the room's pool, replacing any previous one."""
    credentials = load_credentials(roster, logger)
    merged = merge_candidates(fetch_all(credentials, supplier, timeout, logger))
    if not merged:
        logger.info(f"[pool] room={room.code} no tracks from linked accounts, using fallback catalog")
        merged = fallback_pool([p.user_id for p in roster], rng=rng)

    clear_room_pool(room.id)
    tracks = []
    for candidate, listener_ids in merged.values():
        track = Track(
            room_id=room.id,
            external_id=candidate.external_id,
            name=candidate.name,
            artist=candidate.artist,
            art_url=candidate.art_url,
            preview_url=candidate.preview_url,
        )
        track.listener_ids = listener_ids
        db.session.add(track)
        tracks.append(track)
    db.session.commit()
    logger.info(f"[pool] room={room.code} pool size={len(tracks)}")
    return tracks
