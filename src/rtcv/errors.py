from __future__ import annotations


class RtcvError(RuntimeError):
    """Base error for the RT-CV bridge."""


class RtcvValidationError(RtcvError):
    """A command or credential field is missing or malformed."""


class NotAuthenticatedError(RtcvError):
    """No credentials are set."""

    def __init__(self, message: str = "credentials not set") -> None:
        super().__init__(message)


class RtcvAuthError(RtcvError):
    """Credential or role verification against the server failed."""


class RtcvNetworkError(RtcvError):
    """The request never produced an HTTP response."""


class RtcvProtocolError(RtcvError):
    """Response body does not match the expected shape."""


class RtcvApiError(RtcvError):
    """Server answered with an `{"error": ...}` payload."""


class SecretNotFoundError(RtcvError):
    """Requested secret is null or empty."""


__all__ = [
    "RtcvError",
    "RtcvValidationError",
    "NotAuthenticatedError",
    "RtcvAuthError",
    "RtcvNetworkError",
    "RtcvProtocolError",
    "RtcvApiError",
    "SecretNotFoundError",
]
