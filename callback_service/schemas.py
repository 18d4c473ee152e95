"""
Request/response bodies exchanged with the host at each callback point.
"""
from typing import Any

from pydantic import BaseModel, Field

from callback_service.claims import AuthenticationContext, parse_scopes

__all__ = [
    "AuthenticationContext",
    "AuthenticationOutcome",
    "AuthorityModel",
    "AuthorizationRequestDetails",
    "ContextSelectionRequest",
    "ContextSelectionResponse",
    "LaunchResourceId",
    "PostAuthorizeDetails",
    "PostAuthorizeResponse",
    "TokenGeneratingRequest",
    "TokenGeneratingResponse",
    "UserNameRequest",
    "UserNameResponse",
    "UserSession",
]


class LaunchResourceId(BaseModel):
    resource_type: str
    resource_id: str


class AuthorityModel(BaseModel):
    permission: str
    argument: str | None = None


class AuthenticationOutcome(BaseModel):
    username: str | None = None
    authorities: list[AuthorityModel] = Field(default_factory=list)
    launch_resource_ids: list[LaunchResourceId] = Field(default_factory=list)


class UserSession(BaseModel):
    username: str | None = None
    external: bool = False
    fhir_user_url: str | None = None
    launch_resource_ids: list[LaunchResourceId] = Field(default_factory=list)


class AuthorizationRequestDetails(BaseModel):
    client_id: str
    member_id: str | None = None
    launch: str | None = None
    requested_scopes: list[str] = Field(default_factory=list)


class TokenGeneratingRequest(BaseModel):
    user_session: UserSession
    request: AuthorizationRequestDetails


class TokenGeneratingResponse(BaseModel):
    launch_resource_ids: list[LaunchResourceId] = Field(default_factory=list)
    access_token_claims: dict[str, Any] = Field(default_factory=dict)


class PostAuthorizeDetails(BaseModel):
    granted_scopes: list[str] | str | None = None
    access_token: str | None = None
    requesting_practitioner: dict[str, Any] | None = None

    def scopes(self) -> tuple[str, ...]:
        return parse_scopes(self.granted_scopes)

    def practitioner_identifier(self) -> str | None:
        identifier = (self.requesting_practitioner or {}).get("identifier")
        if isinstance(identifier, list):
            identifier = identifier[0] if identifier else None
        if isinstance(identifier, dict):
            return identifier.get("value")
        return None


class PostAuthorizeResponse(BaseModel):
    acknowledged: bool = True
    granted_scopes: list[str] = Field(default_factory=list)


class ContextSelectionRequest(BaseModel):
    user_session: UserSession
    choices: list[dict[str, Any]] = Field(default_factory=list)


class ContextSelectionResponse(BaseModel):
    selection_required: bool
    launch_resource_ids: list[LaunchResourceId] = Field(default_factory=list)
    choices: list[dict[str, Any]] = Field(default_factory=list)


class UserNameRequest(BaseModel):
    user_info: dict[str, Any]
    server_info: dict[str, Any] | None = None


class UserNameResponse(BaseModel):
    username: str
