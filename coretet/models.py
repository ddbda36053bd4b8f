"""
Data models for tracks, playlists, shares, invites and storage providers.

This module defines the core data structures that the handlers read from and
write to the relational store. Every record round-trips through a plain
dictionary so it can be returned as JSON unchanged.
"""

import dataclasses
import json
import uuid
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def normalize_email(email: Optional[str]) -> str:
    """Lower-case and trim an email address for comparison."""
    return (email or "").strip().lower()


def _filter_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    field_names = {f.name for f in dataclasses.fields(cls)}
    return {k: v for k, v in data.items() if k in field_names}


class TrackCategory(Enum):
    """Categories a track can be filed under."""
    SONGS = "songs"
    DEMOS = "demos"
    IDEAS = "ideas"
    VOICE_MEMOS = "voice-memos"
    FINAL_VERSIONS = "final-versions"
    LIVE_PERFORMANCES = "live-performances"


class ShareStatus(Enum):
    """Lifecycle of a playlist-to-recipient grant."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    ACTIVE = "active"
    REVOKED = "revoked"


# Only these statuses let a recipient read the shared playlist's tracks.
GRANTING_SHARE_STATUSES = (ShareStatus.ACCEPTED,)


class ProviderName(Enum):
    """External storage providers a user can connect."""
    GOOGLE_DRIVE = "google_drive"
    DROPBOX = "dropbox"
    ONEDRIVE = "onedrive"
    CORETET = "coretet"


class ConnectionStatus(Enum):
    """Connection state of a storage provider within a session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class Identity:
    """An authenticated caller as reported by the auth provider."""
    id: str
    email: Optional[str] = None

    @property
    def normalized_email(self) -> str:
        return normalize_email(self.email)


@dataclass
class Track:
    """
    An uploaded audio file.

    Attributes:
        id: Unique identifier (UUID)
        user_id: Owning user
        name: Display name (file name without extension)
        file_name: Original file name
        file_size: Size in bytes
        storage_path: Object key, `{user_id}/{id}/{file_name}`; never changes
        category: One of TrackCategory values
        created_at: ISO timestamp
    """
    id: str
    user_id: str
    name: str
    file_name: str
    file_size: int
    storage_path: str
    category: str = TrackCategory.SONGS.value
    created_at: str = field(default_factory=utc_now_iso)

    @staticmethod
    def generate_id() -> str:
        """Generate a unique track ID."""
        return str(uuid.uuid4())

    @staticmethod
    def build_storage_path(user_id: str, track_id: str, file_name: str) -> str:
        return f"{user_id}/{track_id}/{file_name}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        """Create Track from dictionary, filtering unknown keys."""
        return cls(**_filter_fields(cls, data))


@dataclass
class Playlist:
    """A named, ordered collection of track references owned by one user."""
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    track_ids: List[str] = field(default_factory=list)

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Playlist":
        return cls(**_filter_fields(cls, data))


@dataclass
class PlaylistShare:
    """A grant of one playlist to a recipient identified by email."""
    id: str
    playlist_id: str
    shared_by: str
    shared_with_email: str
    status: str = ShareStatus.PENDING.value
    share_token: str = field(default_factory=lambda: str(uuid.uuid4()))
    invited_at: str = field(default_factory=utc_now_iso)
    accepted_at: Optional[str] = None

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())

    @property
    def grants_access(self) -> bool:
        return self.status in {s.value for s in GRANTING_SHARE_STATUSES}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaylistShare":
        return cls(**_filter_fields(cls, data))


@dataclass
class Profile:
    """Per-user storage accounting."""
    id: str
    email: Optional[str] = None
    storage_used: int = 0
    storage_limit: int = 0

    def can_store(self, incoming: int) -> bool:
        """True if `incoming` more bytes fit; the limit itself is allowed."""
        return self.storage_used + incoming <= self.storage_limit

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        return cls(**_filter_fields(cls, data))


@dataclass
class Invite:
    """An invite code, terminal once expired or redeemed."""
    id: str
    code: str
    created_by: str
    expires_at: str
    email: Optional[str] = None
    redeemed_at: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.redeemed_at:
            return True
        now = now or utc_now()
        return datetime.fromisoformat(self.expires_at) <= now

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Invite":
        return cls(**_filter_fields(cls, data))


@dataclass
class Feedback:
    """A feedback message submitted by a user."""
    id: str
    user_id: str
    topic: str
    comment: str
    attachments: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now_iso)

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feedback":
        filtered = _filter_fields(cls, data)
        attachments = filtered.get("attachments")
        if isinstance(attachments, str):
            filtered["attachments"] = json.loads(attachments)
        elif attachments is None:
            filtered["attachments"] = []
        return cls(**filtered)


@dataclass
class Quota:
    """Byte usage reported by a storage provider."""
    used: int
    total: int

    @property
    def available(self) -> int:
        return max(self.total - self.used, 0)

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(self.used / self.total * 100, 100.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "used": self.used,
            "total": self.total,
            "available": self.available,
            "percentage": round(self.percentage, 2),
        }


@dataclass
class ProviderTokens:
    """OAuth tokens for an external provider, decrypted for in-memory use."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None  # epoch seconds
    provider_email: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is None or now >= self.expires_at
