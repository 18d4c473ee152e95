"""
Patient lookup by business identifier on the FHIR server (Patient?identifier=system|value).
"""
import logging

import httpx

from callback_service.client_credentials import upstream_error_message
from callback_service.config import FhirSettings
from callback_service.errors import ConfigMissingError, ResourceNotFoundError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


def identifier_token(system: str | None, value: str) -> str:
    return f"{system}|{value}" if system else value


class FhirPatientClient:
    def __init__(self, settings: FhirSettings, http_client: httpx.Client):
        self.settings = settings
        self.http = http_client

    def find_patient_id(self, system: str | None, value: str) -> str:
        """Return the logical id of the first Patient matching the identifier."""
        token = identifier_token(system, value)
        if not self.settings.base_url:
            raise ConfigMissingError("FHIR_BASE_URL is required to look up patients by identifier")

        logger.info("Searching for patient with identifier: %s", token)
        try:
            r = self.http.get(
                f"{self.settings.base_url}/Patient",
                params={"identifier": token},
                headers={"Accept": "application/fhir+json"},
                timeout=self.settings.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"FHIR server unreachable: {e}") from e
        if not r.is_success:
            raise UpstreamUnavailableError(
                "Patient search failed",
                upstream_status=r.status_code,
                upstream_message=upstream_error_message(r),
            )

        try:
            bundle = r.json()
        except ValueError as e:
            raise UpstreamUnavailableError(
                "FHIR server returned a non-JSON response", upstream_status=r.status_code
            ) from e
        entries = bundle.get("entry") if isinstance(bundle, dict) else None
        for entry in entries if isinstance(entries, list) else []:
            resource = entry.get("resource") if isinstance(entry, dict) else None
            if not isinstance(resource, dict):
                continue
            if resource.get("resourceType", "Patient") == "Patient" and resource.get("id"):
                logger.info("Patient found: Patient/%s", resource["id"])
                return str(resource["id"])
        logger.warning("Patient not found for identifier %s", token)
        raise ResourceNotFoundError("Patient", token)
