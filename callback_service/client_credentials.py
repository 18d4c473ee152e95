"""
Client credentials grant (RFC 6749 §4.4) against the context API's authorization server.
Client authentication is either client_secret_post (credentials in the form body) or
client_secret_basic (Authorization: Basic base64(client_id:client_secret)), per settings.
The token is cached in memory until shortly before it expires.
"""
import base64
import logging
import threading
import time
from dataclasses import dataclass

import httpx

from callback_service.config import AUTH_METHOD_BASIC, TOKEN_REFRESH_BUFFER_SECONDS, ContextApiSettings
from callback_service.errors import ConfigMissingError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class CachedToken:
    access_token: str
    expires_in: int | None
    issued_at: float

    def expired_or_soon(self, buffer_seconds: int = TOKEN_REFRESH_BUFFER_SECONDS) -> bool:
        """
        True if the token is expired or within buffer_seconds of expiry.
        Tokens without expires_in are used once and never cached.
        When lifetime is shorter than the buffer, only True once actually expired.
        """
        if not self.expires_in:
            return True
        elapsed = time.time() - self.issued_at
        if elapsed >= self.expires_in:
            return True
        if self.expires_in > buffer_seconds and elapsed >= (self.expires_in - buffer_seconds):
            return True
        return False


def basic_credentials(client_id: str, client_secret: str) -> str:
    raw = f"{client_id}:{client_secret}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def parse_expires_in(value) -> int | None:
    """Token lifetime in whole seconds; None (not cached) when absent or unparseable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = int(float(value))
    except (TypeError, ValueError, OverflowError):
        logger.warning("Ignoring unparseable expires_in: %r", value)
        return None
    return seconds if seconds > 0 else None


def upstream_error_message(response: httpx.Response) -> str:
    """Best-effort error text from an upstream response (OAuth error JSON, OperationOutcome, or body)."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] if response.text else response.reason_phrase
    if isinstance(body, dict):
        if body.get("error_description") or body.get("error"):
            return str(body.get("error_description") or body.get("error"))
        issues = body.get("issue") if body.get("resourceType") == "OperationOutcome" else None
        if isinstance(issues, list) and issues and isinstance(issues[0], dict):
            return str(issues[0].get("diagnostics") or issues[0].get("code") or "OperationOutcome")
    return response.text[:500]


class ClientCredentialsAuth:
    def __init__(self, settings: ContextApiSettings, http_client: httpx.Client):
        self.settings = settings
        self.http = http_client
        self._cached: CachedToken | None = None
        self._lock = threading.Lock()

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def get_token(self) -> str:
        """Return a bearer token for the context API, fetching a new one when needed."""
        with self._lock:
            if self._cached is not None and not self._cached.expired_or_soon():
                return self._cached.access_token
            self._cached = self._fetch()
            return self._cached.access_token

    def _fetch(self) -> CachedToken:
        missing = self.settings.missing()
        if missing:
            logger.warning("Client credentials grant not attempted; missing settings: %s", ", ".join(missing))
            raise ConfigMissingError(f"Context API client credentials not configured: {', '.join(missing)}")

        data = {"grant_type": "client_credentials", "scope": self.settings.scope}
        headers = {"Accept": "application/json"}
        if self.settings.auth_method == AUTH_METHOD_BASIC:
            headers["Authorization"] = basic_credentials(self.settings.client_id, self.settings.client_secret)
        else:
            data["client_id"] = self.settings.client_id
            data["client_secret"] = self.settings.client_secret

        logger.info(
            "Client credentials grant: token_url=%s client_id=%s auth_method=%s",
            self.settings.token_url,
            self.settings.client_id,
            self.settings.auth_method,
        )
        try:
            r = self.http.post(
                self.settings.token_url,
                data=data,
                headers=headers,
                timeout=self.settings.timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.warning("Client credentials grant failed: %s", e)
            raise UpstreamUnavailableError(f"Token endpoint unreachable: {e}") from e

        if not r.is_success:
            message = upstream_error_message(r)
            logger.warning("Client credentials grant failed: status=%s %s", r.status_code, message)
            raise UpstreamUnavailableError(
                "Token endpoint rejected client credentials grant",
                upstream_status=r.status_code,
                upstream_message=message,
            )

        try:
            body = r.json()
        except ValueError as e:
            raise UpstreamUnavailableError(
                "Token endpoint returned a non-JSON response", upstream_status=r.status_code
            ) from e
        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise UpstreamUnavailableError(
                "Token endpoint response has no access_token", upstream_status=r.status_code
            )
        expires_in = parse_expires_in(body.get("expires_in"))
        logger.info("Client credentials grant succeeded (expires_in=%s)", expires_in)
        return CachedToken(access_token=access_token, expires_in=expires_in, issued_at=time.time())
