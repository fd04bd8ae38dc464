"""
Exceptions raised by the authentication components.

Every error carries the HTTP status it maps to and a message that is safe to
show to a browser. Internal detail (exception text from PyJWT, httpx, Redis)
goes to the log only.
"""

from fastapi import status


class AuthError(Exception):
    """Base exception for auth service errors"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "auth_error"
    message: str = "Authentication error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.message)
        self.detail = detail


class ConfigMissing(AuthError):
    """A required setting is absent at the point of use."""

    code = "config_missing"
    message = "Server misconfiguration"


class UpstreamUnavailable(AuthError):
    """The identity provider's public key could not be fetched."""

    code = "upstream_unavailable"
    message = "Authentication service unavailable"


class VerificationFailed(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "verification_failed"
    message = "Invalid authentication token"


class BadSignature(VerificationFailed):
    code = "bad_signature"


class Malformed(VerificationFailed):
    code = "malformed_token"


class Expired(VerificationFailed):
    code = "token_expired"


class CSRFRejected(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "csrf_rejected"
    message = "Invalid CSRF-Auth token"


class Unauthorized(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"
    message = "Unauthorized"
