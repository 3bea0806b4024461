from .service import INVITE_TTL, VALID_ROLES, InviteService

__all__ = ["INVITE_TTL", "VALID_ROLES", "InviteService"]
