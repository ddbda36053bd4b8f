"""Admin-only invite code generation."""

import logging
import secrets
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from .constants import (
    DEFAULT_APP_URL,
    DEFAULT_INVITE_EXPIRY_DAYS,
    INVITE_CODE_ALPHABET,
    INVITE_CODE_LENGTH,
    INVITE_CODE_MAX_ATTEMPTS,
)
from .errors import Forbidden, InviteCodeExhausted, ValidationError
from .models import Identity, Invite, utc_now

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


class InviteService:
    def __init__(self, database, app_url: str = DEFAULT_APP_URL,
                 code_factory: Callable[[], str] = generate_invite_code):
        self.db = database
        self.app_url = app_url
        self.code_factory = code_factory

    def require_admin(self, identity: Identity):
        if self.db.get_user_role(identity.id) != ADMIN_ROLE:
            raise Forbidden("Forbidden: Admin access required")

    def unique_code(self) -> str:
        """
        Draw codes until one is unused.

        Raises:
            InviteCodeExhausted: If every attempt collided
        """
        for attempt in range(1, INVITE_CODE_MAX_ATTEMPTS + 1):
            code = self.code_factory()
            if not self.db.invite_code_exists(code):
                return code
            logger.debug("Invite code collision on attempt %d", attempt)
        raise InviteCodeExhausted(attempts=INVITE_CODE_MAX_ATTEMPTS)

    def generate(self, identity: Identity, email: Optional[str] = None,
                 expires_in_days: Any = DEFAULT_INVITE_EXPIRY_DAYS,
                 origin: Optional[str] = None) -> Dict[str, Any]:
        self.require_admin(identity)

        if expires_in_days is None:
            expires_in_days = DEFAULT_INVITE_EXPIRY_DAYS
        if isinstance(expires_in_days, bool) or not isinstance(expires_in_days, int) or expires_in_days <= 0:
            raise ValidationError("expiresInDays must be a positive integer", field="expiresInDays")
        if email is not None and not isinstance(email, str):
            raise ValidationError("email must be a string", field="email")

        invite = self.db.insert_invite(Invite(
            id=Invite.generate_id(),
            code=self.unique_code(),
            email=email.strip() if email else None,
            created_by=identity.id,
            expires_at=(utc_now() + timedelta(days=expires_in_days)).isoformat(),
        ))
        logger.info("Invite %s created by %s", invite.code, identity.id)

        base_url = (origin or self.app_url).rstrip("/")
        return {
            "invite": invite.to_dict(),
            "inviteUrl": f"{base_url}?invite={invite.code}",
        }
