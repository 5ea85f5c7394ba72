from __future__ import annotations

import json
from typing import Any, Dict, List

import httpx
import pytest

from rtcv.client import RtcvClient, UserSecret
from rtcv.credentials import Credentials, CredentialStore, build_auth_header
from rtcv.errors import (
    NotAuthenticatedError,
    RtcvApiError,
    RtcvNetworkError,
    RtcvProtocolError,
    SecretNotFoundError,
)


BASE = "http://rtcv.test"


def _store(server_location: str = BASE) -> CredentialStore:
    store = CredentialStore()
    store.set(Credentials(server_location=server_location, api_key_id="kid", api_key="k"))
    return store


def _client(handler, store: CredentialStore | None = None) -> RtcvClient:
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return RtcvClient(store or _store(), client=http)


def test_request_sets_headers_and_concatenates_url():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": True})

    with _client(handler) as rtcv:
        rtcv.check_health()

    req = seen[0]
    assert str(req.url) == f"{BASE}/api/v1/health"
    assert req.method == "GET"
    assert req.headers["content-type"] == "application/json"
    assert req.headers["authorization"] == build_auth_header("kid", "k")


def test_request_without_credentials_does_not_hit_network():
    calls = {"n": 0}

    def handler(_: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json={})

    with _client(handler, store=CredentialStore()) as rtcv:
        with pytest.raises(NotAuthenticatedError):
            rtcv.check_health()

    assert calls["n"] == 0


def test_error_payload_maps_to_api_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "invalid api key"})

    with _client(handler) as rtcv:
        with pytest.raises(RtcvApiError, match="invalid api key"):
            rtcv.check_key_info()


def test_unstructured_error_body_maps_to_protocol_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>Bad Gateway</html>")

    with _client(handler) as rtcv:
        with pytest.raises(RtcvProtocolError):
            rtcv.check_health()


def test_unexpected_success_shape_maps_to_protocol_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"roles": "not-a-list"})

    with _client(handler) as rtcv:
        with pytest.raises(RtcvProtocolError):
            rtcv.check_key_info()


def test_transport_failure_maps_to_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as rtcv:
        with pytest.raises(RtcvNetworkError) as ei:
            rtcv.check_health()

    assert isinstance(ei.value.__cause__, httpx.ConnectError)


def test_key_info_roles():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "x", "roles": [{"role": 4}, {"role": 1, "slug": "scraper"}]})

    with _client(handler) as rtcv:
        info = rtcv.check_key_info()

    assert [r.role for r in info.roles] == [4, 1]
    assert info.has_scraper_role() is True


def test_get_secret_path_and_payload():
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"token": "abc"})

    with _client(handler) as rtcv:
        value = rtcv.get_secret("enc-key", "my-secret")

    assert seen == ["/api/v1/secrets/myKey/my-secret/enc-key"]
    assert value == {"token": "abc"}


@pytest.mark.parametrize("payload", [None, {}, []])
def test_get_secret_absent_is_not_found(payload: Any):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=json.dumps(payload).encode())

    with _client(handler) as rtcv:
        with pytest.raises(SecretNotFoundError):
            rtcv.get_secret("enc", "k")


def test_get_user_secret_defaults_key_and_parses():
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"username": "jane", "password": "pw"})

    with _client(handler) as rtcv:
        user = rtcv.get_user_secret("enc")

    assert seen == ["/api/v1/secrets/myKey/user/enc"]
    assert user == UserSecret(username="jane", password="pw")


def test_get_user_secret_null_is_not_found():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"null")

    with _client(handler) as rtcv:
        with pytest.raises(SecretNotFoundError, match="no user found"):
            rtcv.get_user_secret("enc")


def test_get_users_secret_defaults_key_and_rejects_empty():
    payloads: List[Any] = [[{"username": "a", "password": "1"}, {"username": "b", "password": "2"}], []]
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json=payloads.pop(0))

    with _client(handler) as rtcv:
        users = rtcv.get_users_secret("enc")
        with pytest.raises(SecretNotFoundError, match="no users found"):
            rtcv.get_users_secret("enc", "team")

    assert [u.username for u in users] == ["a", "b"]
    assert seen == ["/api/v1/secrets/myKey/users/enc", "/api/v1/secrets/myKey/team/enc"]


def test_send_cv_posts_wrapped_body():
    bodies: List[Dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/api/v1/scraper/scanCV"
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True})

    cv = {"referenceNumber": "ABC123", "personalDetails": {"firstName": "Jan"}}
    with _client(handler) as rtcv:
        result = rtcv.send_cv(cv)

    assert result.success is True
    assert bodies == [{"cv": cv}]



def test_scanned_reference_nrs():
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json=["REF1", "REF2"])

    with _client(handler) as rtcv:
        refs = rtcv.scanned_reference_nrs(days=30)

    assert refs == ["REF1", "REF2"]
    assert seen == ["/api/v1/scraper/scannedReferenceNrs/since/days/30"]


def test_scanned_reference_nrs_rejects_non_string_items():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"ref": 1}])

    with _client(handler) as rtcv:
        with pytest.raises(RtcvProtocolError):
            rtcv.scanned_reference_nrs()
