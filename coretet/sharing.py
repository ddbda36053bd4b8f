"""Playlist sharing with collaborators identified by email."""

import html
import logging
import uuid
from typing import Any, Dict, List

from .constants import DEFAULT_APP_URL, INVITE_SENDER
from .errors import CoreTetError, NotFound, ValidationError
from .models import Identity, Playlist, PlaylistShare, ShareStatus, normalize_email, utc_now_iso

logger = logging.getLogger(__name__)


class SharingService:
    def __init__(self, database, mailer=None, app_url: str = DEFAULT_APP_URL):
        self.db = database
        self.mailer = mailer
        self.app_url = app_url

    def _owned_playlist(self, identity: Identity, playlist_id: str) -> Playlist:
        playlist = self.db.get_playlist(playlist_id)
        if playlist is None or playlist.user_id != identity.id:
            raise NotFound("Playlist not found or access denied")
        return playlist

    def share(self, identity: Identity, playlist_id: Any, emails: Any) -> Dict[str, Any]:
        """
        Invite each email to a playlist the caller owns.

        New recipients get a pending share; revoked ones are re-invited with
        a fresh token. Failures are collected per email.
        """
        if not isinstance(playlist_id, str) or not playlist_id or not isinstance(emails, list) or not emails:
            raise ValidationError("Playlist ID and emails are required")

        playlist = self._owned_playlist(identity, playlist_id)

        results: List[Dict[str, str]] = []
        errors: List[Dict[str, str]] = []
        for raw_email in emails:
            email = normalize_email(raw_email) if isinstance(raw_email, str) else ""
            if "@" not in email:
                errors.append({"email": str(raw_email), "error": "Invalid email"})
                continue
            try:
                existing = self.db.find_share(playlist.id, email)
                if existing is not None:
                    if existing.status != ShareStatus.REVOKED.value:
                        errors.append({"email": email, "error": "Already shared"})
                        continue
                    token = str(uuid.uuid4())
                    self.db.update_share(existing.id, status=ShareStatus.PENDING.value,
                                         share_token=token, invited_at=utc_now_iso(),
                                         accepted_at=None)
                    results.append({"email": email, "status": "reinvited"})
                    continue

                share = self.db.insert_share(PlaylistShare(
                    id=PlaylistShare.generate_id(),
                    playlist_id=playlist.id,
                    shared_by=identity.id,
                    shared_with_email=email,
                ))
            except CoreTetError as e:
                errors.append({"email": email, "error": e.message})
                continue

            self._send_invite(identity, playlist, share)
            results.append({"email": email, "status": "invited"})

        message = f"Invited {len(results)} collaborator(s)"
        if errors:
            message += f" ({len(errors)} failed)"
        return {"success": True, "results": results, "errors": errors, "message": message}

    def _send_invite(self, identity: Identity, playlist: Playlist, share: PlaylistShare):
        if self.mailer is None:
            return
        sender = identity.email or "A CoreTet user"
        invite_url = f"{self.app_url.rstrip('/')}/collaborate/invite?token={share.share_token}"
        try:
            self.mailer.send(
                sender=INVITE_SENDER,
                to=[share.shared_with_email],
                subject=f'{sender} shared "{playlist.name}" with you',
                html=(
                    "<h2>You're invited to collaborate!</h2>"
                    f"<p>{html.escape(sender)} has shared the playlist "
                    f"\"<strong>{html.escape(playlist.name)}</strong>\" with you.</p>"
                    f'<p><a href="{html.escape(invite_url)}">Accept Invitation</a></p>'
                ),
                text=f'{sender} has shared the playlist "{playlist.name}" with you.\n\nAccept: {invite_url}',
            )
        except CoreTetError as e:
            logger.warning("Invite email to %s failed: %s", share.shared_with_email, e)

    def accept_pending(self, identity: Identity) -> int:
        """Accept every pending share addressed to the caller's email."""
        email = identity.normalized_email
        if not email:
            return 0
        accepted = self.db.accept_pending_shares(email)
        if accepted:
            logger.info("Accepted %d pending share(s) for user %s", accepted, identity.id)
        return accepted

    def revoke(self, identity: Identity, share_id: str) -> PlaylistShare:
        share = self.db.get_share(share_id)
        if share is None:
            raise NotFound("Share not found")
        self._owned_playlist(identity, share.playlist_id)
        self.db.update_share(share.id, status=ShareStatus.REVOKED.value)
        share.status = ShareStatus.REVOKED.value
        return share
