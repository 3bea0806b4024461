"""
Error taxonomy shared by every Prospera handler.

Each error carries the HTTP status it maps to; the API layer turns any
`AppError` into a JSON body of the form ``{"error": message}``.
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class RequestError(AppError):
    """Missing or malformed input."""

    status_code = 400


class AuthError(AppError):
    """
    Authentication or authorisation failure.

    401 for a missing/invalid token, 403 for an identity mismatch and 404
    when the authenticated identity has no profile.
    """

    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class SignatureError(AppError):
    """Webhook signature mismatch; the payload is never processed."""

    status_code = 400


class DependencyError(AppError):
    """The record store, auth verifier or a delivery channel failed."""

    status_code = 500
