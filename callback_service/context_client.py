"""
Launch context resolution: exchange an opaque SMART launch id for the clinical resource it
stands for. GET {CONTEXT_API_URL}/{launch_id} returns a FHIR Parameters resource whose first
parameter carries the context resource.
"""
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from callback_service.client_credentials import ClientCredentialsAuth, upstream_error_message
from callback_service.config import ContextApiSettings
from callback_service.errors import ResourceNotFoundError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

LAUNCH_CONTEXT = "LaunchContext"


@dataclass
class LaunchContext:
    resource_type: str | None
    resource: dict[str, Any] = field(default_factory=dict)

    @property
    def resource_id(self) -> str | None:
        value = self.resource.get("id")
        return str(value) if value else None

    def _identifier(self) -> dict[str, Any]:
        identifiers = self.resource.get("identifier")
        if isinstance(identifiers, list) and identifiers:
            return identifiers[0] if isinstance(identifiers[0], dict) else {}
        if isinstance(identifiers, dict):
            return identifiers
        # Bare {system, value} payloads
        return self.resource

    @property
    def identifier_system(self) -> str | None:
        return self._identifier().get("system")

    @property
    def identifier_value(self) -> str | None:
        value = self._identifier().get("value")
        return str(value) if value else None


def parse_parameters(body: Any, launch_id: str) -> LaunchContext:
    """Pull parameter[0].resource out of a Parameters body; ResourceNotFoundError if absent."""
    if not isinstance(body, dict) or body.get("resourceType") != "Parameters":
        raise ResourceNotFoundError(
            LAUNCH_CONTEXT, launch_id, "Context API response is not a Parameters resource"
        )
    parameters = body.get("parameter")
    if not isinstance(parameters, list):
        parameters = []
    resource = parameters[0].get("resource") if parameters and isinstance(parameters[0], dict) else None
    if not isinstance(resource, dict) or not resource:
        raise ResourceNotFoundError(
            LAUNCH_CONTEXT, launch_id, "Context resource not found in Context API response"
        )
    return LaunchContext(resource_type=resource.get("resourceType"), resource=resource)


class ContextApiClient:
    def __init__(self, settings: ContextApiSettings, auth: ClientCredentialsAuth, http_client: httpx.Client):
        self.settings = settings
        self.auth = auth
        self.http = http_client

    def _get(self, url: str) -> httpx.Response:
        token = self.auth.get_token()
        try:
            return self.http.get(
                url,
                headers={"Accept": "application/json", "Authorization": f"Bearer {token}"},
                timeout=self.settings.timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error("GET context failed: %s", e)
            raise UpstreamUnavailableError(f"Context API unreachable: {e}") from e

    def resolve(self, launch_id: str) -> LaunchContext:
        """Resolve a launch id to its context resource."""
        launch_id = (launch_id or "").strip()
        if not launch_id:
            raise ResourceNotFoundError(LAUNCH_CONTEXT, "", "Launch parameter is empty")

        url = f"{self.settings.url}/{quote(launch_id, safe='')}"
        logger.info("GET context: %s", url)
        r = self._get(url)
        if r.status_code == 401:
            # Token may have been revoked or rotated early; retry once with a fresh one
            logger.info("Context API returned 401; refreshing client credentials token")
            self.auth.invalidate()
            r = self._get(url)

        if r.status_code == 404:
            raise ResourceNotFoundError(LAUNCH_CONTEXT, launch_id, f"Launch context not found: {launch_id}")
        if not r.is_success:
            message = upstream_error_message(r)
            logger.error("Failed to GET context: status=%s %s", r.status_code, message)
            raise UpstreamUnavailableError(
                "Context API request failed", upstream_status=r.status_code, upstream_message=message
            )
        try:
            body = r.json()
        except ValueError as e:
            raise UpstreamUnavailableError(
                "Context API returned a non-JSON response", upstream_status=r.status_code
            ) from e

        context = parse_parameters(body, launch_id)
        logger.info("Context resolved: launch=%s resourceType=%s", launch_id, context.resource_type)
        return context
