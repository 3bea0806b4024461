"""
Phone number verification by one-time SMS code.

Per user the profile row stores the pending code, its expiry and an attempt
counter. Verification runs in a fixed order: expiry, attempt ceiling,
attempt increment, code comparison, then clear-and-mark-verified. The
increment happens before the comparison so every guess counts, including one
that would have matched.
"""

import hmac
import logging
import secrets
from datetime import timedelta

from ..clock import Clock, parse_timestamp, utcnow
from ..database import Database
from ..errors import NotFoundError, RequestError
from ..notifications.delivery import SmsSender

logger = logging.getLogger(__name__)

CODE_TTL = timedelta(minutes=30)
MAX_ATTEMPTS = 5


def generate_code() -> str:
    """Random 6-digit code (100000–999999)."""
    return str(100000 + secrets.randbelow(900000))


class PhoneVerificationService:
    def __init__(self, db: Database, sms: SmsSender, clock: Clock = utcnow) -> None:
        self.db = db
        self.sms = sms
        self.clock = clock

    def send_code(self, user_id: str, phone: str) -> None:
        code = generate_code()
        self.db.profiles.update_by_user_id(
            user_id,
            {
                "phone": phone,
                "phone_verification_code": code,
                "phone_verification_expires": self.clock() + CODE_TTL,
                "phone_verification_attempts": 0,
                "phone_verification_status": "pending",
                "phone_verified": False,
            },
        )
        self.sms.send(phone, f"Seu código de verificação PROSPERA.AI é: {code}")
        logger.info("Verification code sent for user %s", user_id)

    def verify_code(self, user_id: str, code: str) -> None:
        """
        Check `code` against the pending one.

        Raises
        ------
        RequestError
            Expired code, attempt ceiling reached, or wrong code.
        NotFoundError
            No profile for `user_id`.
        """
        profile = self.db.profiles.find_by_user_id(user_id)
        if not profile:
            raise NotFoundError("User not found")

        expires = parse_timestamp(profile.get("phone_verification_expires"))
        if expires is not None and expires < self.clock():
            raise RequestError("Verification code has expired")

        attempts = int(profile.get("phone_verification_attempts") or 0)
        if attempts >= MAX_ATTEMPTS:
            raise RequestError("Too many verification attempts")

        self.db.profiles.update_by_user_id(
            user_id, {"phone_verification_attempts": attempts + 1}
        )

        expected = profile.get("phone_verification_code")
        if not expected or not hmac.compare_digest(str(expected), str(code)):
            raise RequestError("Invalid verification code")

        self.db.profiles.update_by_user_id(
            user_id,
            {
                "phone_verified": True,
                "phone_verification_status": "verified",
                "phone_verification_code": None,
                "phone_verification_expires": None,
            },
        )
        logger.info("Phone verified for user %s", user_id)
