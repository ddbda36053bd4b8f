"""Ordered playlists. Order lives in an explicit position column."""

import logging
from typing import Any, Dict, List, Optional

from .errors import Forbidden, NotFound, ValidationError
from .models import Identity, Playlist

logger = logging.getLogger(__name__)


class PlaylistService:
    def __init__(self, database):
        self.db = database

    def _load(self, playlist_id: str) -> Playlist:
        playlist = self.db.get_playlist(playlist_id)
        if playlist is None:
            raise NotFound("Playlist not found")
        return playlist

    def _owned(self, identity: Identity, playlist_id: str) -> Playlist:
        playlist = self._load(playlist_id)
        if playlist.user_id != identity.id:
            raise Forbidden("Only the playlist owner can change it")
        return playlist

    def can_read(self, identity: Identity, playlist: Playlist) -> bool:
        if playlist.user_id == identity.id:
            return True
        email = identity.normalized_email
        return bool(email) and playlist.id in self.db.shared_playlist_ids(email)

    def create(self, identity: Identity, name: Any, description: Optional[str] = None) -> Playlist:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name is required", field="name")
        if description is not None and not isinstance(description, str):
            raise ValidationError("description must be a string", field="description")
        return self.db.insert_playlist(Playlist(
            id=Playlist.generate_id(),
            user_id=identity.id,
            name=name.strip(),
            description=description,
        ))

    def tracks(self, identity: Identity, playlist_id: str) -> List[Dict[str, Any]]:
        """Tracks in position order, for the owner or an accepted collaborator."""
        playlist = self._load(playlist_id)
        if not self.can_read(identity, playlist):
            raise Forbidden("Access denied")
        return self.db.get_playlist_tracks(playlist.id)

    def add_track(self, identity: Identity, playlist_id: str, track_id: Any) -> Playlist:
        playlist = self._owned(identity, playlist_id)
        if not isinstance(track_id, str) or not track_id:
            raise ValidationError("trackId is required", field="trackId")
        track = self.db.get_track(track_id)
        if track is None:
            raise NotFound("Track not found")
        if track.user_id != identity.id:
            raise Forbidden("Only your own tracks can be added")
        self.db.append_playlist_track(playlist.id, track.id)
        return self._load(playlist.id)

    def reorder(self, identity: Identity, playlist_id: str, track_ids: Any) -> Playlist:
        playlist = self._owned(identity, playlist_id)
        if not isinstance(track_ids, list) or not all(isinstance(t, str) for t in track_ids):
            raise ValidationError("trackIds must be a list", field="trackIds")
        if len(track_ids) != len(set(track_ids)) or set(track_ids) != set(playlist.track_ids):
            raise ValidationError("trackIds must list every track in the playlist exactly once",
                                  field="trackIds")
        self.db.reorder_playlist(playlist.id, track_ids)
        return self._load(playlist.id)
