"""
Callback Service: SMART launch context hooks for the authorization server.
Each callback point is a POST endpoint; library errors are rendered as
{"error", "error_description"} with the status of their kind.
Port 8090.
"""
import logging
from functools import lru_cache

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from callback_service import hooks
from callback_service.client_credentials import ClientCredentialsAuth
from callback_service.config import LOG_LEVEL, ContextApiSettings, FhirSettings
from callback_service.context_client import ContextApiClient
from callback_service.errors import CallbackError
from callback_service.fhir_client import FhirPatientClient
from callback_service.schemas import (
    AuthenticationContext,
    AuthenticationOutcome,
    ContextSelectionRequest,
    ContextSelectionResponse,
    PostAuthorizeDetails,
    PostAuthorizeResponse,
    TokenGeneratingRequest,
    TokenGeneratingResponse,
    UserNameRequest,
    UserNameResponse,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Callback Service", version="0.2.0")


@lru_cache
def get_http_client() -> httpx.Client:
    return httpx.Client(follow_redirects=False)


@lru_cache
def get_context_client() -> ContextApiClient:
    """One resolver (and cached client credentials token) per process."""
    settings = ContextApiSettings.from_env()
    http = get_http_client()
    return ContextApiClient(settings, ClientCredentialsAuth(settings, http), http)


@lru_cache
def get_patient_client() -> FhirPatientClient | None:
    settings = FhirSettings.from_env()
    if not settings.base_url:
        return None
    return FhirPatientClient(settings, get_http_client())


@app.exception_handler(CallbackError)
async def callback_error_handler(request: Request, exc: CallbackError):
    logger.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.kind.value)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "callback_service"}


@app.post("/hooks/inbound/authenticate-success", response_model=AuthenticationOutcome)
def authenticate_success(ctx: AuthenticationContext):
    return hooks.on_authenticate_success(ctx)


@app.post("/hooks/federated/authentication-success", response_model=AuthenticationOutcome)
def federated_authentication_success(ctx: AuthenticationContext):
    return hooks.on_authentication_success(ctx)


@app.post("/hooks/pre-context-selection", response_model=ContextSelectionResponse)
def pre_context_selection(body: ContextSelectionRequest):
    return hooks.on_smart_login_pre_context_selection(body)


@app.post("/hooks/token-generating", response_model=TokenGeneratingResponse)
def token_generating(
    body: TokenGeneratingRequest,
    resolver: ContextApiClient = Depends(get_context_client),
    patients: FhirPatientClient | None = Depends(get_patient_client),
):
    """Resolve the launch parameter and return the launch bindings and access token claims to add."""
    return hooks.on_token_generating(body.user_session, body.request, resolver, patients)


@app.post("/hooks/post-authorize", response_model=PostAuthorizeResponse)
def post_authorize(details: PostAuthorizeDetails):
    return hooks.on_post_authorize(details)


@app.post("/hooks/user-name", response_model=UserNameResponse)
def user_name(body: UserNameRequest):
    return hooks.get_user_name(body)


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=LOG_LEVEL)
    uvicorn.run(
        "callback_service.main:app",
        host="127.0.0.1",
        port=8090,
        reload=True,
    )
