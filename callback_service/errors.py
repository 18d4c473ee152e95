"""
Typed errors raised by the callback library. The webhook layer renders them as
OAuth-style JSON errors ({"error", "error_description"}) with status_code.
"""
from enum import Enum


class ErrorKind(str, Enum):
    CONFIG_MISSING = "config_missing"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CLAIM_MISSING = "claim_missing"
    UNSUPPORTED_CONTEXT = "unsupported_context"


class CallbackError(Exception):
    kind: ErrorKind
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind.value, "error_description": self.message}


class ConfigMissingError(CallbackError):
    """Required configuration is absent; nothing was sent upstream."""

    kind = ErrorKind.CONFIG_MISSING
    status_code = 500


class UpstreamUnavailableError(CallbackError):
    """An upstream HTTP call (token endpoint, context API, FHIR) failed."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 502

    def __init__(self, message: str, *, upstream_status: int | None = None, upstream_message: str | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.upstream_message = upstream_message

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.upstream_status is not None:
            data["upstream_status"] = self.upstream_status
        if self.upstream_message:
            data["upstream_message"] = self.upstream_message
        return data


class ResourceNotFoundError(CallbackError):
    kind = ErrorKind.RESOURCE_NOT_FOUND
    status_code = 404

    def __init__(self, resource_type: str, key: str, message: str | None = None):
        super().__init__(message or f"{resource_type} not found: {key}")
        self.resource_type = resource_type
        self.key = key


class ClaimMissingError(CallbackError):
    kind = ErrorKind.CLAIM_MISSING
    status_code = 400

    def __init__(self, claim: str):
        super().__init__(f"Required claim '{claim}' is missing")
        self.claim = claim


class UnsupportedContextError(CallbackError):
    """The launch resolved to a resource type we cannot bind to the token."""

    kind = ErrorKind.UNSUPPORTED_CONTEXT
    status_code = 422

    def __init__(self, resource_type: str | None):
        super().__init__(f"Launch context resource type not supported: {resource_type}")
        self.resource_type = resource_type
