from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel

from .errors import NotAuthenticatedError, RtcvValidationError


SUPPORTED_SCHEMES = ("http://", "https://")


class Credentials(BaseModel):
    """Connection details as sent by the host in `set_credentials`."""

    server_location: str  # e.g. http://localhost:4000
    api_key_id: str
    api_key: str


@dataclass(frozen=True)
class DerivedCredentials:
    server_location: str
    api_key_id: str
    auth_header: str

    def __repr__(self) -> str:
        # Keep the hashed key out of logs and tracebacks
        return (
            f"DerivedCredentials(server_location={self.server_location!r}, "
            f"api_key_id={self.api_key_id!r})"
        )


def hash_api_key(api_key: str) -> str:
    """Uppercase hex SHA-512 of the API key (128 chars)."""
    return hashlib.sha512(api_key.encode("utf-8")).hexdigest().upper()


def build_auth_header(api_key_id: str, api_key: str) -> str:
    return f"Basic {api_key_id}:{hash_api_key(api_key)}"


class CredentialStore:
    """
    Holds the active server location and the derived Authorization header.

    - `set()` validates, derives and stores in one step.
    - `derive()` + `replace()` split that step so callers can verify a
      candidate against the server before committing it.
    - Stored credentials are a single frozen object swapped on replace, so a
      reader never sees a mix of old and new fields.
    """

    def __init__(self) -> None:
        self._current: Optional[DerivedCredentials] = None

    @staticmethod
    def derive(credentials: Credentials) -> DerivedCredentials:
        for field in ("server_location", "api_key_id", "api_key"):
            if not getattr(credentials, field):
                raise RtcvValidationError(f"{field} cannot be empty")
        if not credentials.server_location.startswith(SUPPORTED_SCHEMES):
            raise RtcvValidationError(
                "server_location must start with a supported protocol like: http:// or https://"
            )
        return DerivedCredentials(
            server_location=credentials.server_location,
            api_key_id=credentials.api_key_id,
            auth_header=build_auth_header(credentials.api_key_id, credentials.api_key),
        )

    def replace(self, derived: DerivedCredentials) -> None:
        self._current = derived

    def set(self, credentials: Credentials) -> DerivedCredentials:
        derived = self.derive(credentials)
        self.replace(derived)
        return derived

    def clear(self) -> None:
        self._current = None

    @property
    def is_set(self) -> bool:
        return self._current is not None

    def current(self) -> DerivedCredentials:
        if self._current is None:
            raise NotAuthenticatedError()
        return self._current

    def header(self) -> str:
        return self.current().auth_header


__all__ = [
    "Credentials",
    "CredentialStore",
    "DerivedCredentials",
    "build_auth_header",
    "hash_api_key",
]
