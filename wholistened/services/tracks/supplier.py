from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional


@dataclass(frozen=True)
class CandidateTrack:
    external_id: str
    name: str
    artist: Optional[str] = None
    art_url: Optional[str] = None
    preview_url: Optional[str] = None


@dataclass(frozen=True)
class PlayerCredential:
    """Snapshot of a player's linked account, safe to hand to worker threads."""
    user_id: int
    access_token: str
    refresh_token: Optional[str] = None
    expired: bool = False


class TrackSupplier:
    """Source of a player's candidate tracks. Implementations may raise."""

    def fetch_candidate_tracks(self, credential: PlayerCredential) -> List[CandidateTrack]:
        raise NotImplementedError


class StaticTrackSupplier(TrackSupplier):
    """Serves a fixed catalog keyed by user id (development and tests)."""

    def __init__(self, catalog: Optional[Mapping[int, Iterable[CandidateTrack]]] = None) -> None:
        self.catalog = {int(k): list(v) for k, v in (catalog or {}).items()}

    def fetch_candidate_tracks(self, credential: PlayerCredential) -> List[CandidateTrack]:
        return list(self.catalog.get(credential.user_id, []))
