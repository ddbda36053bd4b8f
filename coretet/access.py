"""
Signed retrieval URLs for tracks, gated by ownership and playlist shares.

A caller may stream a track if they own it, or if their email holds an
accepted share on a playlist that contains it.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Set

from .constants import ERROR_ACCESS_DENIED, ERROR_TRACK_NOT_FOUND, ERROR_URL_FAILED, SIGNED_URL_TTL
from .errors import Forbidden, NotFound, UpstreamError
from .models import Identity, Track

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Per-track outcome of a batch request; each id lands in exactly one map."""
    urls: Dict[str, str] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {"urls": self.urls, "errors": self.errors}


class TrackUrlIssuer:
    """Mints signed retrieval URLs for tracks a caller can access."""

    def __init__(self, database, object_store, ttl_seconds: int = SIGNED_URL_TTL):
        self.db = database
        self.store = object_store
        self.ttl_seconds = ttl_seconds

    def shared_track_ids(self, identity: Identity) -> Set[str]:
        """
        Every track id reachable through accepted shares for the caller's email.

        Two round trips: shared playlist ids first, then the tracks in them.
        """
        email = identity.normalized_email
        if not email:
            return set()
        playlist_ids = self.db.shared_playlist_ids(email)
        return set(self.db.track_ids_in_playlists(playlist_ids))

    def issue(self, identity: Identity, track_id: str) -> str:
        """
        Return a signed URL for one track.

        Raises:
            NotFound: If the track does not exist
            Forbidden: If the caller neither owns nor shares the track
            UpstreamError: If the store or the object store fails
        """
        track = self.db.get_track(track_id)
        if track is None:
            raise NotFound("Track not found")

        if track.user_id != identity.id and track.id not in self.shared_track_ids(identity):
            logger.info("Denied track %s to user %s", track_id, identity.id)
            raise Forbidden(ERROR_ACCESS_DENIED)

        return self._mint(track)

    def issue_many(self, identity: Identity, track_ids: Iterable[str]) -> BatchResult:
        """
        Return signed URLs for many tracks at once.

        Failures are reported per track and never abort the batch.
        """
        requested = list(dict.fromkeys(track_ids))
        tracks = {t.id: t for t in self.db.get_tracks(requested)}
        shared = self.shared_track_ids(identity)

        result = BatchResult()
        for track_id in requested:
            track = tracks.get(track_id)
            if track is None:
                result.errors[track_id] = ERROR_TRACK_NOT_FOUND
                continue
            if track.user_id != identity.id and track_id not in shared:
                result.errors[track_id] = ERROR_ACCESS_DENIED
                continue
            try:
                result.urls[track_id] = self._mint(track)
            except UpstreamError as e:
                logger.warning("Signed URL failed for track %s: %s", track_id, e)
                result.errors[track_id] = ERROR_URL_FAILED
        return result

    def _mint(self, track: Track) -> str:
        try:
            return self.store.create_signed_url(track.storage_path, self.ttl_seconds)
        except UpstreamError as e:
            logger.error("URL generation error for %s: %s", track.storage_path, e)
            raise UpstreamError(ERROR_URL_FAILED, details=e.details)
