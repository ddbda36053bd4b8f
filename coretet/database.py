"""
SQLite Database Manager for CoreTet.
Holds ownership and sharing relations: tracks, playlists, playlist_tracks,
playlist_shares, plus profiles, roles, invites, feedback and provider tokens.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .constants import DEFAULT_DATABASE_PATH
from .errors import StoreError
from .models import (
    Feedback,
    GRANTING_SHARE_STATUSES,
    Invite,
    Playlist,
    PlaylistShare,
    Profile,
    ShareStatus,
    Track,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


def _placeholders(values: List[Any]) -> str:
    return ",".join(["?"] * len(values))


class DatabaseManager:
    def __init__(self, db_path: Optional[str] = None):
        self.db_path = Path(db_path or DEFAULT_DATABASE_PATH).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _get_connection(self, operation: str):
        """
        Open a connection for one operation.

        The block runs in a transaction that commits on success. Any sqlite
        failure is re-raised as StoreError naming the operation.
        """
        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON")
            with conn:
                yield conn
        except sqlite3.Error as e:
            logger.error("Database error during %s: %s", operation, e)
            raise StoreError(f"Failed to {operation}", operation=operation, details=str(e)) from e
        finally:
            if conn is not None:
                conn.close()

    def _init_db(self):
        """Initialize the database schema."""
        with self._get_connection("initialize schema") as conn:
            conn.execute("PRAGMA journal_mode=WAL")

            # 1. Accounts
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    id TEXT PRIMARY KEY,
                    email TEXT,
                    storage_used INTEGER NOT NULL DEFAULT 0,
                    storage_limit INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_roles (
                    user_id TEXT PRIMARY KEY,
                    role TEXT NOT NULL DEFAULT 'user'
                )
            """)

            # 2. Library
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tracks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT,
                    file_name TEXT NOT NULL,
                    file_size INTEGER NOT NULL,
                    storage_path TEXT NOT NULL UNIQUE,
                    category TEXT NOT NULL DEFAULT 'songs',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS playlists (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS playlist_tracks (
                    playlist_id TEXT NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
                    track_id TEXT NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    PRIMARY KEY (playlist_id, track_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS playlist_shares (
                    id TEXT PRIMARY KEY,
                    playlist_id TEXT NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
                    shared_by TEXT NOT NULL,
                    shared_with_email TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    share_token TEXT NOT NULL,
                    invited_at TEXT NOT NULL,
                    accepted_at TEXT
                )
            """)

            # 3. Peripheral
            conn.execute("""
                CREATE TABLE IF NOT EXISTS invites (
                    id TEXT PRIMARY KEY,
                    code TEXT NOT NULL UNIQUE,
                    email TEXT,
                    created_by TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    redeemed_at TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS feedback (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    topic TEXT NOT NULL,
                    comment TEXT NOT NULL,
                    attachments TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_storage_providers (
                    user_id TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    encrypted_access_token TEXT,
                    encrypted_refresh_token TEXT,
                    token_expiry REAL,
                    provider_email TEXT,
                    is_active BOOLEAN NOT NULL DEFAULT 0,
                    is_connected BOOLEAN NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, provider)
                )
            """)

            # 4. Storage accounting and path immutability
            conn.execute("""
                CREATE TRIGGER IF NOT EXISTS tracks_storage_ai AFTER INSERT ON tracks BEGIN
                    UPDATE profiles SET storage_used = storage_used + new.file_size
                    WHERE id = new.user_id;
                END
            """)
            conn.execute("""
                CREATE TRIGGER IF NOT EXISTS tracks_storage_ad AFTER DELETE ON tracks BEGIN
                    UPDATE profiles SET storage_used = MAX(storage_used - old.file_size, 0)
                    WHERE id = old.user_id;
                END
            """)
            conn.execute("""
                CREATE TRIGGER IF NOT EXISTS tracks_path_bu BEFORE UPDATE OF storage_path ON tracks
                WHEN new.storage_path <> old.storage_path BEGIN
                    SELECT RAISE(ABORT, 'storage_path is immutable');
                END
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_user ON tracks(user_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_shares_email ON playlist_shares(shared_with_email)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_playlist_tracks_track ON playlist_tracks(track_id)")

    # ------------------------------------------------------------------
    # Profiles and roles

    def upsert_profile(self, user_id: str, email: Optional[str] = None,
                       storage_limit: Optional[int] = None) -> Profile:
        with self._get_connection("save profile") as conn:
            conn.execute("""
                INSERT INTO profiles (id, email, storage_limit) VALUES (?, ?, COALESCE(?, 0))
                ON CONFLICT(id) DO UPDATE SET
                    email = COALESCE(excluded.email, profiles.email),
                    storage_limit = COALESCE(?, profiles.storage_limit)
            """, (user_id, email, storage_limit, storage_limit))
            row = conn.execute("SELECT * FROM profiles WHERE id = ?", (user_id,)).fetchone()
            return Profile.from_dict(dict(row))

    def get_profile(self, user_id: str) -> Optional[Profile]:
        with self._get_connection("load profile") as conn:
            row = conn.execute("SELECT * FROM profiles WHERE id = ?", (user_id,)).fetchone()
            return Profile.from_dict(dict(row)) if row else None

    def set_user_role(self, user_id: str, role: str):
        with self._get_connection("save role") as conn:
            conn.execute("""
                INSERT INTO user_roles (user_id, role) VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET role = excluded.role
            """, (user_id, role))

    def get_user_role(self, user_id: str) -> Optional[str]:
        with self._get_connection("load role") as conn:
            row = conn.execute("SELECT role FROM user_roles WHERE user_id = ?", (user_id,)).fetchone()
            return row["role"] if row else None

    # ------------------------------------------------------------------
    # Tracks

    def insert_track(self, track: Track) -> Track:
        with self._get_connection("create track record") as conn:
            conn.execute("""
                INSERT INTO tracks (id, user_id, name, file_name, file_size, storage_path, category, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                track.id, track.user_id, track.name, track.file_name, track.file_size,
                track.storage_path, track.category, track.created_at
            ))
            row = conn.execute("SELECT * FROM tracks WHERE id = ?", (track.id,)).fetchone()
            return Track.from_dict(dict(row))

    def get_track(self, track_id: str) -> Optional[Track]:
        with self._get_connection("load track") as conn:
            row = conn.execute("SELECT * FROM tracks WHERE id = ?", (track_id,)).fetchone()
            return Track.from_dict(dict(row)) if row else None

    def get_tracks(self, track_ids: Iterable[str]) -> List[Track]:
        """Fetch every existing track among `track_ids` in one query."""
        ids = list(dict.fromkeys(track_ids))
        if not ids:
            return []
        with self._get_connection("query tracks") as conn:
            cursor = conn.execute(f"SELECT * FROM tracks WHERE id IN ({_placeholders(ids)})", ids)
            return [Track.from_dict(dict(row)) for row in cursor.fetchall()]

    def delete_track(self, track_id: str) -> bool:
        with self._get_connection("delete track") as conn:
            cursor = conn.execute("DELETE FROM tracks WHERE id = ?", (track_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Playlists

    def insert_playlist(self, playlist: Playlist) -> Playlist:
        with self._get_connection("create playlist") as conn:
            conn.execute("""
                INSERT INTO playlists (id, user_id, name, description, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (playlist.id, playlist.user_id, playlist.name, playlist.description, playlist.created_at))
        return playlist

    def get_playlist(self, playlist_id: str) -> Optional[Playlist]:
        """Load a playlist with its track ids in position order."""
        with self._get_connection("load playlist") as conn:
            row = conn.execute("SELECT * FROM playlists WHERE id = ?", (playlist_id,)).fetchone()
            if not row:
                return None
            playlist = Playlist.from_dict(dict(row))
            cursor = conn.execute("""
                SELECT track_id FROM playlist_tracks
                WHERE playlist_id = ?
                ORDER BY position
            """, (playlist_id,))
            playlist.track_ids = [r["track_id"] for r in cursor.fetchall()]
            return playlist

    def get_playlist_tracks(self, playlist_id: str) -> List[Dict[str, Any]]:
        """Tracks of a playlist, joined with their position, in order."""
        with self._get_connection("load playlist tracks") as conn:
            cursor = conn.execute("""
                SELECT t.*, pt.position FROM playlist_tracks pt
                JOIN tracks t ON t.id = pt.track_id
                WHERE pt.playlist_id = ?
                ORDER BY pt.position
            """, (playlist_id,))
            return [dict(row) for row in cursor.fetchall()]

    def append_playlist_track(self, playlist_id: str, track_id: str) -> Optional[int]:
        """
        Append a track at the end of a playlist.

        Returns:
            The new position, or None if the track was already present
        """
        with self._get_connection("add track to playlist") as conn:
            existing = conn.execute(
                "SELECT 1 FROM playlist_tracks WHERE playlist_id = ? AND track_id = ?",
                (playlist_id, track_id)
            ).fetchone()
            if existing:
                return None
            row = conn.execute(
                "SELECT MAX(position) AS max_pos FROM playlist_tracks WHERE playlist_id = ?",
                (playlist_id,)
            ).fetchone()
            position = 0 if row["max_pos"] is None else row["max_pos"] + 1
            conn.execute(
                "INSERT INTO playlist_tracks (playlist_id, track_id, position) VALUES (?, ?, ?)",
                (playlist_id, track_id, position)
            )
            return position

    def reorder_playlist(self, playlist_id: str, track_ids: List[str]):
        """Rewrite positions 0..n-1 following `track_ids`."""
        with self._get_connection("reorder playlist") as conn:
            conn.executemany(
                "UPDATE playlist_tracks SET position = ? WHERE playlist_id = ? AND track_id = ?",
                [(index, playlist_id, track_id) for index, track_id in enumerate(track_ids)]
            )

    # ------------------------------------------------------------------
    # Shares

    def insert_share(self, share: PlaylistShare) -> PlaylistShare:
        with self._get_connection("create share") as conn:
            conn.execute("""
                INSERT INTO playlist_shares (
                    id, playlist_id, shared_by, shared_with_email, status,
                    share_token, invited_at, accepted_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                share.id, share.playlist_id, share.shared_by, share.shared_with_email,
                share.status, share.share_token, share.invited_at, share.accepted_at
            ))
        return share

    def get_share(self, share_id: str) -> Optional[PlaylistShare]:
        with self._get_connection("load share") as conn:
            row = conn.execute("SELECT * FROM playlist_shares WHERE id = ?", (share_id,)).fetchone()
            return PlaylistShare.from_dict(dict(row)) if row else None

    def find_share(self, playlist_id: str, email: str) -> Optional[PlaylistShare]:
        """Find the share of a playlist for an already-normalized email."""
        with self._get_connection("load share") as conn:
            row = conn.execute("""
                SELECT * FROM playlist_shares
                WHERE playlist_id = ? AND lower(shared_with_email) = ?
            """, (playlist_id, email)).fetchone()
            return PlaylistShare.from_dict(dict(row)) if row else None

    def update_share(self, share_id: str, **fields) -> bool:
        allowed = {"status", "share_token", "invited_at", "accepted_at"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update share fields: {sorted(unknown)}")
        if not fields:
            return False
        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._get_connection("update share") as conn:
            cursor = conn.execute(
                f"UPDATE playlist_shares SET {assignments} WHERE id = ?",
                [*fields.values(), share_id]
            )
            return cursor.rowcount > 0

    def shared_playlist_ids(self, email: str) -> List[str]:
        """Playlists shared with an already-normalized email under a granting status."""
        statuses = [s.value for s in GRANTING_SHARE_STATUSES]
        with self._get_connection("query shared playlists") as conn:
            cursor = conn.execute(f"""
                SELECT DISTINCT playlist_id FROM playlist_shares
                WHERE lower(shared_with_email) = ? AND status IN ({_placeholders(statuses)})
            """, [email, *statuses])
            return [row["playlist_id"] for row in cursor.fetchall()]

    def track_ids_in_playlists(self, playlist_ids: List[str]) -> List[str]:
        if not playlist_ids:
            return []
        with self._get_connection("query shared tracks") as conn:
            cursor = conn.execute(f"""
                SELECT DISTINCT track_id FROM playlist_tracks
                WHERE playlist_id IN ({_placeholders(playlist_ids)})
            """, playlist_ids)
            return [row["track_id"] for row in cursor.fetchall()]

    def accept_pending_shares(self, email: str) -> int:
        with self._get_connection("accept shares") as conn:
            cursor = conn.execute("""
                UPDATE playlist_shares SET status = ?, accepted_at = ?
                WHERE lower(shared_with_email) = ? AND status = ?
            """, (ShareStatus.ACCEPTED.value, utc_now_iso(), email, ShareStatus.PENDING.value))
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Invites and feedback

    def invite_code_exists(self, code: str) -> bool:
        with self._get_connection("check invite code") as conn:
            return conn.execute("SELECT 1 FROM invites WHERE code = ?", (code,)).fetchone() is not None

    def insert_invite(self, invite: Invite) -> Invite:
        with self._get_connection("create invite") as conn:
            conn.execute("""
                INSERT INTO invites (id, code, email, created_by, expires_at, redeemed_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                invite.id, invite.code, invite.email, invite.created_by,
                invite.expires_at, invite.redeemed_at, invite.created_at
            ))
        return invite

    def insert_feedback(self, feedback: Feedback) -> Feedback:
        with self._get_connection("store feedback") as conn:
            conn.execute("""
                INSERT INTO feedback (id, user_id, topic, comment, attachments, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                feedback.id, feedback.user_id, feedback.topic, feedback.comment,
                json.dumps(feedback.attachments) if feedback.attachments else None,
                feedback.created_at
            ))
        return feedback

    # ------------------------------------------------------------------
    # External storage provider tokens

    def save_provider_tokens(self, user_id: str, provider: str,
                             encrypted_access_token: str,
                             encrypted_refresh_token: Optional[str],
                             token_expiry: Optional[float],
                             provider_email: Optional[str] = None):
        with self._get_connection("save provider tokens") as conn:
            conn.execute("""
                INSERT INTO user_storage_providers (
                    user_id, provider, encrypted_access_token, encrypted_refresh_token,
                    token_expiry, provider_email, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, provider) DO UPDATE SET
                    encrypted_access_token = excluded.encrypted_access_token,
                    encrypted_refresh_token = COALESCE(excluded.encrypted_refresh_token,
                                                       user_storage_providers.encrypted_refresh_token),
                    token_expiry = excluded.token_expiry,
                    provider_email = COALESCE(excluded.provider_email, user_storage_providers.provider_email),
                    updated_at = excluded.updated_at
            """, (
                user_id, provider, encrypted_access_token, encrypted_refresh_token,
                token_expiry, provider_email, utc_now_iso()
            ))

    def get_provider_tokens(self, user_id: str, provider: str) -> Optional[Dict[str, Any]]:
        with self._get_connection("load provider tokens") as conn:
            row = conn.execute("""
                SELECT * FROM user_storage_providers WHERE user_id = ? AND provider = ?
            """, (user_id, provider)).fetchone()
            return dict(row) if row else None

    def clear_provider_tokens(self, user_id: str, provider: str):
        with self._get_connection("clear provider tokens") as conn:
            conn.execute("""
                UPDATE user_storage_providers
                SET encrypted_access_token = NULL, encrypted_refresh_token = NULL,
                    token_expiry = NULL, is_active = 0, updated_at = ?
                WHERE user_id = ? AND provider = ?
            """, (utc_now_iso(), user_id, provider))

    def set_active_provider(self, user_id: str, provider: Optional[str]):
        """Mark one provider active for a user and clear every other."""
        with self._get_connection("switch active provider") as conn:
            if provider is not None:
                conn.execute("""
                    INSERT OR IGNORE INTO user_storage_providers (user_id, provider, updated_at)
                    VALUES (?, ?, ?)
                """, (user_id, provider, utc_now_iso()))
            conn.execute("""
                UPDATE user_storage_providers
                SET is_active = CASE WHEN provider = ? THEN 1 ELSE 0 END, updated_at = ?
                WHERE user_id = ?
            """, (provider, utc_now_iso(), user_id))

    def set_provider_connected(self, user_id: str, provider: str, connected: bool):
        """Record whether a provider without tokens of its own is connected."""
        with self._get_connection("save provider connection") as conn:
            conn.execute("""
                INSERT INTO user_storage_providers (user_id, provider, is_connected, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, provider) DO UPDATE SET
                    is_connected = excluded.is_connected,
                    is_active = CASE WHEN excluded.is_connected THEN user_storage_providers.is_active ELSE 0 END,
                    updated_at = excluded.updated_at
            """, (user_id, provider, 1 if connected else 0, utc_now_iso()))

    def is_provider_connected(self, user_id: str, provider: str) -> bool:
        with self._get_connection("load provider connection") as conn:
            row = conn.execute("""
                SELECT is_connected FROM user_storage_providers WHERE user_id = ? AND provider = ?
            """, (user_id, provider)).fetchone()
            return bool(row and row["is_connected"])

    def get_active_provider(self, user_id: str) -> Optional[str]:
        with self._get_connection("load active provider") as conn:
            row = conn.execute("""
                SELECT provider FROM user_storage_providers WHERE user_id = ? AND is_active = 1
            """, (user_id,)).fetchone()
            return row["provider"] if row else None
