"""
Callback service configuration. Values come from the environment, read once into
frozen settings objects that are handed to the clients at construction time.
No secrets in this file; the context API client secret must come from env.
"""
import os
from dataclasses import dataclass

from callback_service.errors import ConfigMissingError

AUTH_METHOD_POST = "client_secret_post"
AUTH_METHOD_BASIC = "client_secret_basic"
AUTH_METHODS = (AUTH_METHOD_POST, AUTH_METHOD_BASIC)

# Local username given to users arriving through a federated IdP
USER_NAME_PREFIX = os.environ.get("CALLBACK_USER_NAME_PREFIX", "EXT_USER:")

# Refresh the cached client-credentials token this many seconds before it expires
TOKEN_REFRESH_BUFFER_SECONDS = 30

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


def _env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def _timeout() -> float:
    raw = _env("CALLBACK_HTTP_TIMEOUT") or "10"
    try:
        value = float(raw)
    except ValueError:
        raise ConfigMissingError(f"CALLBACK_HTTP_TIMEOUT must be a number of seconds, got '{raw}'") from None
    if value <= 0:
        raise ConfigMissingError(f"CALLBACK_HTTP_TIMEOUT must be positive, got '{raw}'")
    return value


@dataclass(frozen=True)
class ContextApiSettings:
    """Where the launch context API lives and how we authenticate to it."""

    url: str = "http://smart-context:8088/api/context"
    token_url: str | None = None
    client_id: str = "smile-cdr"
    client_secret: str | None = None
    scope: str = "context"
    auth_method: str = AUTH_METHOD_POST
    timeout_seconds: float = 10.0

    def __post_init__(self):
        if self.auth_method not in AUTH_METHODS:
            raise ConfigMissingError(
                f"Unsupported context API auth method '{self.auth_method}' "
                f"(expected one of {', '.join(AUTH_METHODS)})"
            )

    @classmethod
    def from_env(cls) -> "ContextApiSettings":
        return cls(
            url=(_env("CONTEXT_API_URL") or cls.url).rstrip("/"),
            token_url=_env("CONTEXT_API_TOKEN_URL"),
            client_id=_env("CONTEXT_API_CLIENT_ID") or cls.client_id,
            client_secret=_env("CONTEXT_API_CLIENT_SECRET"),
            scope=_env("CONTEXT_API_SCOPE") or cls.scope,
            auth_method=_env("CONTEXT_API_AUTH_METHOD") or AUTH_METHOD_POST,
            timeout_seconds=_timeout(),
        )

    def missing(self) -> list[str]:
        """Names of required settings that are not configured."""
        missing = []
        if not self.client_secret:
            missing.append("client_secret")
        if not self.token_url:
            missing.append("token_url")
        return missing


@dataclass(frozen=True)
class FhirSettings:
    """FHIR server used to look up patients by business identifier."""

    base_url: str | None = None
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "FhirSettings":
        base_url = _env("FHIR_BASE_URL")
        return cls(
            base_url=base_url.rstrip("/") if base_url else None,
            timeout_seconds=_timeout(),
        )
