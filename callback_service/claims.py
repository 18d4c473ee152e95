"""
Claim extraction from the host's login context (approved scopes + token claims).
"""
from typing import Any

from pydantic import BaseModel, Field

from callback_service.errors import ClaimMissingError


def parse_scopes(value: str | list | tuple | None) -> tuple[str, ...]:
    """Normalize a scope claim (space-separated string or list) to an ordered tuple without duplicates."""
    if value is None:
        return ()
    items = value.split() if isinstance(value, str) else [str(s).strip() for s in value]
    seen: dict[str, None] = {}
    for item in items:
        if item:
            seen.setdefault(item, None)
    return tuple(seen)


def _claim_str(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class AuthenticationContext(BaseModel):
    """Login context handed to authentication callbacks."""

    username: str | None = None
    claims: dict[str, Any] = Field(default_factory=dict)
    approved_scopes: list[str] = Field(default_factory=list)

    def get_claim(self, name: str) -> str | None:
        return _claim_str(self.claims.get(name))

    def scopes(self) -> tuple[str, ...]:
        return parse_scopes(self.approved_scopes)

    def has_approved_scope(self, scope: str) -> bool:
        return scope in self.scopes()


def patient_claim(ctx: AuthenticationContext) -> str | None:
    return ctx.get_claim("patient")


def hdid_claim(ctx: AuthenticationContext) -> str | None:
    # Patient portal IdP carries the patient id as its health directory id
    return ctx.get_claim("hdid")


def practitioner_claim(ctx: AuthenticationContext) -> str | None:
    return ctx.get_claim("practitioner")


def preferred_username(user_info: dict[str, Any]) -> str:
    """preferred_username from OIDC userinfo claims; raises ClaimMissingError if absent."""
    value = _claim_str(user_info.get("preferred_username"))
    if value is None:
        raise ClaimMissingError("preferred_username")
    return value
