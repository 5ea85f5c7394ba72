from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from .credentials import CredentialStore, DerivedCredentials
from .errors import (
    RtcvApiError,
    RtcvNetworkError,
    RtcvProtocolError,
    RtcvValidationError,
    SecretNotFoundError,
)


logger = logging.getLogger(__name__)

SCRAPER_ROLE = 1
DEFAULT_USER_KEY = "user"
DEFAULT_USERS_KEY = "users"


class ErrorBody(BaseModel):
    error: str


class ApiRole(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: int

    def is_scraper(self) -> bool:
        return self.role == SCRAPER_ROLE


class ApiKeyInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    roles: List[ApiRole]

    def has_scraper_role(self) -> bool:
        return any(r.is_scraper() for r in self.roles)


class ScanCvResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool


class UserSecret(BaseModel):
    username: str
    password: str


_ANY: TypeAdapter[Any] = TypeAdapter(Any)
_OPTIONAL_ANY: TypeAdapter[Optional[Any]] = TypeAdapter(Optional[Any])
_KEY_INFO: TypeAdapter[ApiKeyInfo] = TypeAdapter(ApiKeyInfo)
_SCAN_CV: TypeAdapter[ScanCvResponse] = TypeAdapter(ScanCvResponse)
_OPTIONAL_USER: TypeAdapter[Optional[UserSecret]] = TypeAdapter(Optional[UserSecret])
_OPTIONAL_USERS: TypeAdapter[Optional[List[UserSecret]]] = TypeAdapter(Optional[List[UserSecret]])
_REFERENCE_NRS: TypeAdapter[List[str]] = TypeAdapter(List[str])


class RtcvClient:
    """
    Authenticated client for the RT-CV API.

    Notes
    - Every request carries `Content-Type: application/json` and the
      `Authorization` header derived by the credential store.
    - The URL is `server_location + path`, taken verbatim.
    - No retries. Transport failures raise `RtcvNetworkError`; 4xx/5xx with an
      `{"error": ...}` body raise `RtcvApiError`; anything unparsable raises
      `RtcvProtocolError`.
    - No timeout unless one is given; a stalled server blocks the caller.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        *,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._credentials = credentials
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "RtcvClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def check_health(self, *, credentials: Optional[DerivedCredentials] = None) -> Any:
        return self.request("GET", "/api/v1/health", credentials=credentials)

    def check_key_info(self, *, credentials: Optional[DerivedCredentials] = None) -> ApiKeyInfo:
        return self.request("GET", "/api/v1/auth/keyinfo", adapter=_KEY_INFO, credentials=credentials)

    def get_secret(self, encryption_key: str, key: str) -> Any:
        """
        Fetch the secret stored under `key`, decrypted with `encryption_key`.

        Returns the raw JSON payload. A `null` or empty payload raises
        `SecretNotFoundError`.
        """
        value = self._fetch_secret(encryption_key, key, _OPTIONAL_ANY)
        if value is None or (isinstance(value, (list, dict, str)) and len(value) == 0):
            raise SecretNotFoundError(f"no secret found for key {key}")
        return value

    def get_user_secret(self, encryption_key: str, key: Optional[str] = None) -> UserSecret:
        key = key or DEFAULT_USER_KEY
        user = self._fetch_secret(encryption_key, key, _OPTIONAL_USER)
        if user is None:
            raise SecretNotFoundError("no user found")
        return user

    def get_users_secret(self, encryption_key: str, key: Optional[str] = None) -> List[UserSecret]:
        key = key or DEFAULT_USERS_KEY
        users = self._fetch_secret(encryption_key, key, _OPTIONAL_USERS)
        if not users:
            raise SecretNotFoundError("no users found")
        return users

    def send_cv(self, cv: Dict[str, Any]) -> ScanCvResponse:
        return self.request("POST", "/api/v1/scraper/scanCV", body={"cv": cv}, adapter=_SCAN_CV)

    def scanned_reference_nrs(self, days: int = 30) -> List[str]:
        """Reference numbers the server scanned in the last `days` days."""
        return self.request(
            "GET",
            f"/api/v1/scraper/scannedReferenceNrs/since/days/{days}",
            adapter=_REFERENCE_NRS,
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        adapter: TypeAdapter[Any] = _ANY,
        credentials: Optional[DerivedCredentials] = None,
    ) -> Any:
        """
        Perform one request and parse the body with `adapter`.

        `credentials` overrides the stored ones, which lets a caller verify
        candidate credentials before storing them.
        """
        creds = credentials or self._credentials.current()
        url = f"{creds.server_location}{path}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": creds.auth_header,
        }

        logger.debug("%s %s", method, url)
        try:
            if body is None:
                resp = self._client.request(method, url, headers=headers)
            else:
                resp = self._client.request(method, url, headers=headers, json=body)
        except httpx.TransportError as exc:
            raise RtcvNetworkError(f"{method} {path} failed: {exc}") from exc

        text = resp.text
        if 400 <= resp.status_code < 600:
            logger.debug("HTTP %s from %s", resp.status_code, url)
            try:
                err = ErrorBody.model_validate_json(text)
            except ValidationError as exc:
                raise RtcvProtocolError(
                    f"HTTP {resp.status_code} from RT-CV with unexpected body: {text[:200]}"
                ) from exc
            raise RtcvApiError(err.error)

        try:
            return adapter.validate_json(text)
        except ValidationError as exc:
            raise RtcvProtocolError(f"Failed to parse response of {method} {path}: {exc}") from exc

    # --------------- Internal ---------------
    def _fetch_secret(self, encryption_key: str, key: str, adapter: TypeAdapter[Any]) -> Any:
        if not key:
            raise RtcvValidationError("key cannot be empty")
        if not encryption_key:
            raise RtcvValidationError("encryption_key cannot be empty")
        return self.request(
            "GET",
            f"/api/v1/secrets/myKey/{key}/{encryption_key}",
            adapter=adapter,
        )


__all__ = [
    "RtcvClient",
    "ApiKeyInfo",
    "ApiRole",
    "ScanCvResponse",
    "UserSecret",
    "SCRAPER_ROLE",
]
