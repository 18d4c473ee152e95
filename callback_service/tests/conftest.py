"""
Pytest configuration for callback_service. Upstream HTTP is served by httpx.MockTransport,
and settings are built explicitly so nothing depends on the developer's environment.
"""
import json
import os

import httpx
import pytest

for _name in list(os.environ):
    if _name.startswith("CONTEXT_API_") or _name in ("FHIR_BASE_URL", "CALLBACK_USER_NAME_PREFIX"):
        del os.environ[_name]

from callback_service.client_credentials import ClientCredentialsAuth  # noqa: E402
from callback_service.config import ContextApiSettings, FhirSettings  # noqa: E402
from callback_service.context_client import ContextApiClient  # noqa: E402
from callback_service.fhir_client import FhirPatientClient  # noqa: E402

TOKEN_URL = "http://auth.test/token"
CONTEXT_URL = "http://context.test/api/context"
FHIR_URL = "http://fhir.test/fhir"


class Upstream:
    """Routes requests by (method, path) to canned responses and records what was sent."""

    def __init__(self):
        self.routes: dict[tuple[str, str], list] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *responses):
        self.routes.setdefault((method, path), []).extend(responses)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": "not_found"})
        response = queue[0] if len(queue) == 1 else queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @staticmethod
    def token(token: str = "cc-token", expires_in: int | None = 300) -> httpx.Response:
        body = {"access_token": token, "token_type": "Bearer"}
        if expires_in is not None:
            body["expires_in"] = expires_in
        return httpx.Response(200, json=body)

    @staticmethod
    def parameters(resource: dict) -> httpx.Response:
        return httpx.Response(
            200,
            content=json.dumps({"resourceType": "Parameters", "parameter": [{"name": "context", "resource": resource}]}),
            headers={"content-type": "application/json"},
        )

    @staticmethod
    def bundle(*patient_ids: str) -> httpx.Response:
        entries = [{"resource": {"resourceType": "Patient", "id": pid}} for pid in patient_ids]
        return httpx.Response(200, json={"resourceType": "Bundle", "type": "searchset", "entry": entries})


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def http_client(upstream):
    with httpx.Client(transport=httpx.MockTransport(upstream.handler)) as client:
        yield client


@pytest.fixture
def context_settings():
    return ContextApiSettings(
        url=CONTEXT_URL,
        token_url=TOKEN_URL,
        client_id="smile-cdr",
        client_secret="s3cret",
        scope="context",
    )


@pytest.fixture
def auth(context_settings, http_client):
    return ClientCredentialsAuth(context_settings, http_client)


@pytest.fixture
def resolver(context_settings, auth, http_client):
    return ContextApiClient(context_settings, auth, http_client)


@pytest.fixture
def patients(http_client):
    return FhirPatientClient(FhirSettings(base_url=FHIR_URL), http_client)
