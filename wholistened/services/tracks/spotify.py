"""Spotify track supplier via Spotipy: top tracks plus recently played."""
from typing import Optional

from spotipy import Spotify
from spotipy.oauth2 import SpotifyOAuth

from .supplier import CandidateTrack, PlayerCredential, TrackSupplier


def _to_candidate(track: dict) -> Optional[CandidateTrack]:
    if not track or not track.get('id'):
        return None
    images = (track.get('album') or {}).get('images') or []
    artists = ', '.join(a.get('name') or '' for a in track.get('artists') or []) or None
    return CandidateTrack(
        external_id=track['id'],
        name=track.get('name') or 'Unknown Track',
        artist=artists,
        art_url=images[0].get('url') if images else None,
        preview_url=track.get('preview_url'),
    )


class SpotifyTrackSupplier(TrackSupplier):
    def __init__(self, client_id: str = '', client_secret: str = '', redirect_uri: str = '',
                 limit: int = 50, requests_timeout: float = 5) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.limit = max(1, min(int(limit), 50))
        self.requests_timeout = requests_timeout

    def _access_token(self, credential: PlayerCredential) -> str:
        if credential.expired and credential.refresh_token and self.client_id and self.client_secret:
            auth = SpotifyOAuth(
                client_id=self.client_id,
                client_secret=self.client_secret,
                redirect_uri=self.redirect_uri,
            )
            token_info = auth.refresh_access_token(credential.refresh_token)
            return token_info['access_token']
        return credential.access_token

    def fetch_candidate_tracks(self, credential: PlayerCredential) -> list:
        sp = Spotify(auth=self._access_token(credential), requests_timeout=self.requests_timeout)
        tracks = []
        top = sp.current_user_top_tracks(limit=self.limit, time_range='medium_term') or {}
        for item in top.get('items') or []:
            candidate = _to_candidate(item)
            if candidate:
                tracks.append(candidate)
        recent = sp.current_user_recently_played(limit=self.limit) or {}
        for item in recent.get('items') or []:
            candidate = _to_candidate(item.get('track'))
            if candidate:
                tracks.append(candidate)
        return tracks
