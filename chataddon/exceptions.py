"""Error types raised by the add-on core."""

from __future__ import annotations


class AddonError(Exception):
    """Base exception for the add-on core."""


class MissingRoomId(AddonError, ValueError):
    """No room id was passed and the credential is not room-scoped."""


class MissingUserIdentity(AddonError, ValueError):
    """None of user id, mention name or email address was supplied."""


class _HttpFailure(AddonError):
    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthenticationFailed(_HttpFailure):
    """The client-credentials token request failed."""


class ApiCallFailed(_HttpFailure):
    """A platform API call failed at the transport or HTTP level."""


class InstallationSetupFailed(AddonError):
    """The capability document could not be fetched or understood."""
