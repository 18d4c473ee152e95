"""Tests for the client credentials grant used to call the context API."""
import base64
import time
from dataclasses import replace
from urllib.parse import parse_qs

import httpx
import pytest

from callback_service.client_credentials import (
    CachedToken,
    ClientCredentialsAuth,
    parse_expires_in,
    upstream_error_message,
)
from callback_service.config import AUTH_METHOD_BASIC
from callback_service.errors import ConfigMissingError, ErrorKind, UpstreamUnavailableError


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def test_client_secret_post_sends_credentials_in_form(upstream, auth):
    upstream.add("POST", "/token", upstream.token("abc"))
    assert auth.get_token() == "abc"
    [req] = upstream.calls("POST", "/token")
    assert req.headers["accept"] == "application/json"
    assert "authorization" not in req.headers
    assert _form(req) == {
        "grant_type": "client_credentials",
        "scope": "context",
        "client_id": "smile-cdr",
        "client_secret": "s3cret",
    }


def test_client_secret_basic_sends_authorization_header(upstream, context_settings, http_client):
    settings = replace(context_settings, auth_method=AUTH_METHOD_BASIC)
    upstream.add("POST", "/token", upstream.token("basic-token"))
    assert ClientCredentialsAuth(settings, http_client).get_token() == "basic-token"
    [req] = upstream.calls("POST", "/token")
    expected = base64.b64encode(b"smile-cdr:s3cret").decode()
    assert req.headers["authorization"] == f"Basic {expected}"
    form = _form(req)
    assert "client_secret" not in form
    assert form["grant_type"] == "client_credentials"


@pytest.mark.parametrize("missing", ["client_secret", "token_url"])
def test_missing_config_fails_closed_without_http_call(upstream, context_settings, http_client, missing):
    settings = replace(context_settings, **{missing: None})
    with pytest.raises(ConfigMissingError) as exc:
        ClientCredentialsAuth(settings, http_client).get_token()
    assert missing in exc.value.message
    assert exc.value.kind is ErrorKind.CONFIG_MISSING
    assert upstream.requests == []


def test_upstream_rejection_carries_status_and_message(upstream, auth):
    upstream.add(
        "POST",
        "/token",
        httpx.Response(401, json={"error": "invalid_client", "error_description": "Bad secret"}),
    )
    with pytest.raises(UpstreamUnavailableError) as exc:
        auth.get_token()
    assert exc.value.upstream_status == 401
    assert exc.value.upstream_message == "Bad secret"
    assert exc.value.to_dict()["upstream_status"] == 401


def test_transport_error_is_upstream_unavailable(upstream, auth):
    upstream.add("POST", "/token", httpx.ConnectError("refused"))
    with pytest.raises(UpstreamUnavailableError):
        auth.get_token()


def test_response_without_access_token(upstream, auth):
    upstream.add("POST", "/token", httpx.Response(200, json={"token_type": "Bearer"}))
    with pytest.raises(UpstreamUnavailableError):
        auth.get_token()


def test_token_is_cached_until_invalidated(upstream, auth):
    upstream.add("POST", "/token", upstream.token("first"), upstream.token("second"))
    assert auth.get_token() == "first"
    assert auth.get_token() == "first"
    assert len(upstream.calls("POST", "/token")) == 1
    auth.invalidate()
    assert auth.get_token() == "second"


def test_token_without_expiry_is_not_reused(upstream, auth):
    upstream.add("POST", "/token", upstream.token("once", expires_in=None))
    auth.get_token()
    auth.get_token()
    assert len(upstream.calls("POST", "/token")) == 2


def test_cached_token_expiry_window():
    fresh = CachedToken(access_token="t", expires_in=300, issued_at=time.time())
    assert fresh.expired_or_soon(buffer_seconds=30) is False
    near = CachedToken(access_token="t", expires_in=300, issued_at=time.time() - 280)
    assert near.expired_or_soon(buffer_seconds=30) is True
    short = CachedToken(access_token="t", expires_in=20, issued_at=time.time() - 10)
    assert short.expired_or_soon(buffer_seconds=30) is False
    gone = CachedToken(access_token="t", expires_in=20, issued_at=time.time() - 21)
    assert gone.expired_or_soon(buffer_seconds=30) is True


@pytest.mark.parametrize(
    "value, expected",
    [(300, 300), ("3600.0", 3600), ("120", 120), ("soon", None), ("", None), (0, None), (None, None), (True, None)],
)
def test_parse_expires_in(value, expected):
    assert parse_expires_in(value) == expected


def test_fractional_string_expires_in_is_cached(upstream, auth):
    upstream.add("POST", "/token", httpx.Response(200, json={"access_token": "a", "expires_in": "3600.0"}))
    assert auth.get_token() == "a"
    assert auth.get_token() == "a"
    assert len(upstream.calls("POST", "/token")) == 1


def test_unparseable_expires_in_is_not_cached(upstream, auth):
    upstream.add("POST", "/token", httpx.Response(200, json={"access_token": "a", "expires_in": "soon"}))
    auth.get_token()
    auth.get_token()
    assert len(upstream.calls("POST", "/token")) == 2


def test_error_message_from_malformed_operation_outcome_falls_back_to_body():
    response = httpx.Response(503, json={"resourceType": "OperationOutcome", "issue": ["down"]})
    assert upstream_error_message(response) == response.text


def test_error_message_from_operation_outcome_diagnostics():
    response = httpx.Response(
        503, json={"resourceType": "OperationOutcome", "issue": [{"code": "transient", "diagnostics": "down"}]}
    )
    assert upstream_error_message(response) == "down"
