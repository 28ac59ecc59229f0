from __future__ import annotations


class AuthenticationError(Exception):
    status_code = 401
    detail = "Unauthorized"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.detail)
        self.reason = reason or self.detail


class InvalidToken(AuthenticationError):
    status_code = 401
    detail = "Invalid or expired token"


class TokenRevoked(AuthenticationError):
    status_code = 403
    detail = "Token blacklisted, please login again"


class IdentityNotFound(AuthenticationError):
    status_code = 403
    detail = "Please Signup"


class ConversationNotFound(LookupError):
    pass


class RequestRejected(Exception):
    """A client error raised below the HTTP layer."""

    def __init__(self, detail: str, *, status_code: int = 400) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
