"""
Upload intake: validates a pending upload, reserves a track record and hands
back a signed URL the client PUTs the audio file to.
"""

import logging
import os
from typing import Any, Dict, Optional

from .constants import ALLOWED_UPLOAD_EXTENSIONS, DEFAULT_STORAGE_LIMIT, MAX_UPLOAD_SIZE
from .errors import QuotaExceeded, TooLarge, UnsupportedType, ValidationError
from .models import Identity, Profile, Track, TrackCategory

logger = logging.getLogger(__name__)

CATEGORY_VALUES = {c.value for c in TrackCategory}


def file_extension(file_name: str) -> str:
    """Lower-cased extension including the dot, or '' if there is none."""
    index = file_name.rfind(".")
    if index < 0:
        return ""
    return file_name[index:].lower()


def is_allowed_audio_file(file_name: str) -> bool:
    return file_extension(file_name) in ALLOWED_UPLOAD_EXTENSIONS


class UploadIntake:
    """Validates upload requests and reserves storage for them."""

    def __init__(self, database, object_store,
                 max_file_size: int = MAX_UPLOAD_SIZE,
                 default_storage_limit: int = DEFAULT_STORAGE_LIMIT):
        self.db = database
        self.store = object_store
        self.max_file_size = max_file_size
        self.default_storage_limit = default_storage_limit

    def validate(self, file_name: Any, file_size: Any, category: Any) -> str:
        """
        Check request fields and return the effective category.

        Raises:
            ValidationError: If a field is missing or malformed
            UnsupportedType: If the extension is not an allowed audio format
            TooLarge: If the file exceeds the per-file limit
        """
        if not isinstance(file_name, str) or not file_name.strip():
            raise ValidationError("fileName is required", field="fileName")
        if "/" in file_name or "\\" in file_name:
            raise ValidationError("fileName must not contain path separators", field="fileName")
        if isinstance(file_size, bool) or not isinstance(file_size, int) or file_size < 0:
            raise ValidationError("fileSize must be a non-negative integer", field="fileSize")
        if category in (None, ""):
            category = TrackCategory.SONGS.value
        elif category not in CATEGORY_VALUES:
            raise ValidationError(f"Unknown category: {category}", field="category")

        if not is_allowed_audio_file(file_name):
            raise UnsupportedType("Only MP3, M4A, WAV, and FLAC files are allowed", file_name=file_name)

        if file_size > self.max_file_size:
            raise TooLarge(f"File size exceeds {self.max_file_size // (1024 * 1024)}MB limit",
                           file_size=file_size)
        return category

    def check_quota(self, identity: Identity, file_size: int) -> Profile:
        profile = self.db.get_profile(identity.id)
        if profile is None:
            # The row must exist before the first insert or the usage trigger has nothing to count into
            profile = self.db.upsert_profile(identity.id, email=identity.email,
                                             storage_limit=self.default_storage_limit)
        if not profile.can_store(file_size):
            raise QuotaExceeded("Storage limit exceeded",
                                used=profile.storage_used, limit=profile.storage_limit)
        return profile

    def begin_upload(self, identity: Identity, file_name: Any, file_size: Any,
                     category: Optional[str] = None) -> Dict[str, Any]:
        """
        Validate, reserve a track id and mint the signed upload URL.

        The URL is minted before the track row is written; if the insert
        fails the URL is left orphaned and the error is surfaced.
        """
        category = self.validate(file_name, file_size, category)
        self.check_quota(identity, file_size)

        track_id = Track.generate_id()
        storage_path = Track.build_storage_path(identity.id, track_id, file_name)

        upload = self.store.create_signed_upload_url(storage_path)

        track = self.db.insert_track(Track(
            id=track_id,
            user_id=identity.id,
            name=os.path.splitext(file_name)[0],
            file_name=file_name,
            file_size=file_size,
            storage_path=storage_path,
            category=category,
        ))
        logger.info("Reserved upload %s for user %s (%d bytes)", storage_path, identity.id, file_size)

        return {
            "track": track.to_dict(),
            "uploadUrl": upload.url,
            "path": upload.path,
            "token": upload.token,
        }
