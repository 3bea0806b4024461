"""
Family-plan invitations.

An owner on the family plan invites a collaborator by e-mail with a role.
Invites are persisted with a random url-safe token and a 7-day expiry; the
token is what the invite link carries and what `verify` / `accept` look up.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..clock import Clock, parse_timestamp, utcnow
from ..database import Database
from ..errors import AuthError, DependencyError, NotFoundError, RequestError
from ..notifications.delivery import EmailSender

logger = logging.getLogger(__name__)

INVITE_TTL = timedelta(days=7)
VALID_ROLES = ("viewer", "editor", "admin")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


class InviteService:
    def __init__(
        self,
        db: Database,
        email: EmailSender,
        app_base_url: str,
        clock: Clock = utcnow,
    ) -> None:
        self.db = db
        self.email = email
        self.app_base_url = app_base_url
        self.clock = clock

    def create_invite(self, owner_id: str, email: str, role: str) -> str:
        """
        Persist an invite and return its id.

        The plan check comes first: an owner outside the family plan is
        refused with 403 whatever role was asked for.
        """
        profile = self.db.profiles.find_by_user_id(owner_id)
        if not profile:
            raise AuthError("User not found", status_code=404)

        if profile.get("plan") != "family":
            raise AuthError("User must be on family plan to invite others", status_code=403)

        if role not in VALID_ROLES:
            raise RequestError('Invalid role. Must be "viewer", "editor", or "admin"')

        token = secrets.token_urlsafe(32)
        invite_id = self.db.invites.create(
            {
                "owner_id": owner_id,
                "email": email.strip().lower(),
                "role": role,
                "token": token,
                "status": "pending",
                "expires_at": self.clock() + INVITE_TTL,
            }
        )
        if not invite_id:
            raise DependencyError("Failed to create invite")

        self._send_invite_email(email, profile, token)
        return str(invite_id)

    def verify_invite(self, token: str) -> Dict[str, Any]:
        invite = self._load(token)
        owner = self.db.profiles.find_by_user_id(invite["owner_id"]) or {}
        expires_at = parse_timestamp(invite.get("expires_at"))

        return {
            "valid": self._is_open(invite, expires_at),
            "email": invite.get("email"),
            "role": invite.get("role"),
            "ownerName": owner.get("full_name") or owner.get("email"),
            "ownerId": invite["owner_id"],
            "expiresAt": _iso(expires_at),
        }

    def accept_invite(self, token: str, user_id: str) -> Dict[str, Any]:
        invite = self._load(token)
        if not self._is_open(invite, parse_timestamp(invite.get("expires_at"))):
            raise RequestError("Invite is no longer valid")

        profile = self.db.profiles.find_by_user_id(user_id)
        if not profile:
            raise AuthError("User not found", status_code=404)

        profile_email = (profile.get("email") or "").strip().lower()
        if profile_email and profile_email != (invite.get("email") or "").lower():
            raise AuthError("Invite was issued to a different e-mail address", status_code=403)

        granted_at = self.clock()
        self.db.shared_access.create(
            {
                "owner_user_id": invite["owner_id"],
                "user_id": user_id,
                "role": invite["role"],
                "invite_id": invite["id"],
                "granted_at": granted_at,
            }
        )
        self.db.invites.update(
            invite["id"],
            {"status": "accepted", "accepted_by": user_id, "accepted_at": granted_at},
        )

        return {
            "success": True,
            "message": "Invite accepted successfully",
            "accessGranted": {
                "userId": user_id,
                "ownerUserId": invite["owner_id"],
                "role": invite["role"],
                "grantedAt": _iso(granted_at),
            },
        }

    def _load(self, token: str) -> Dict[str, Any]:
        invite = self.db.invites.find_by_token(token)
        if not invite:
            raise NotFoundError("Invite not found")
        return invite

    def _is_open(self, invite: Dict[str, Any], expires_at: Optional[datetime]) -> bool:
        return (
            invite.get("status") == "pending"
            and expires_at is not None
            and expires_at > self.clock()
        )

    def _send_invite_email(self, email: str, owner: Dict[str, Any], token: str) -> None:
        owner_name = owner.get("full_name") or owner.get("email") or "Um usuário"
        link = f"{self.app_base_url}/invite/{token}"
        body = (
            f"Olá,\n\n{owner_name} convidou você para acessar a conta dele(a) na PROSPERA.AI.\n\n"
            f"Aceite o convite em até 7 dias: {link}\n"
        )
        try:
            self.email.send(email, "PROSPERA.AI - Convite de acesso", body)
        except DependencyError:
            # The invite row exists; the owner can share the link manually.
            logger.warning("Invite created but e-mail delivery to %s failed", email)
