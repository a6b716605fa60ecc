from .supplier import CandidateTrack, PlayerCredential, StaticTrackSupplier, TrackSupplier

__all__ = ['CandidateTrack', 'PlayerCredential', 'StaticTrackSupplier', 'TrackSupplier']
