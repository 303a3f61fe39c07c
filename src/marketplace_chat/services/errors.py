"""Error hierarchy raised by the messaging services.

Each error carries the machine-readable ``code`` and HTTP ``status_code`` that
the API layer uses when translating it into a response.
"""

from __future__ import annotations


class MessagingError(RuntimeError):
    """Base exception for messaging failures surfaced to callers."""

    code = "MESSAGING_ERROR"
    status_code = 500

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


class AuthenticationError(MessagingError):
    """Caller identity is missing or invalid."""

    code = "UNAUTHORIZED"
    status_code = 401


class PermissionDeniedError(MessagingError):
    """Caller is not the owner, member or receiver of the target."""

    code = "FORBIDDEN"
    status_code = 403


class EntitlementError(PermissionDeniedError):
    """Caller's plan does not include messaging."""

    code = "PLAN_REQUIRED"


class NotFoundError(MessagingError):
    """Target entity does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class InvalidRequestError(MessagingError):
    """Request failed validation."""

    code = "INVALID_REQUEST"
    status_code = 400


class FeatureDisabledError(MessagingError):
    """Feature is switched off for this deployment."""

    code = "CHAT_DISABLED"
    status_code = 410
