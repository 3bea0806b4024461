from .phone import CODE_TTL, MAX_ATTEMPTS, PhoneVerificationService, generate_code

__all__ = ["CODE_TTL", "MAX_ATTEMPTS", "PhoneVerificationService", "generate_code"]
