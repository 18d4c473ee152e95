"""Tests for patient lookup by identifier on the FHIR server."""
import httpx
import pytest

from callback_service.config import FhirSettings
from callback_service.errors import ConfigMissingError, ResourceNotFoundError, UpstreamUnavailableError
from callback_service.fhir_client import FhirPatientClient, identifier_token


def test_identifier_token():
    assert identifier_token("urn:phn", "9094") == "urn:phn|9094"
    assert identifier_token(None, "9094") == "9094"


def test_find_patient_id_returns_first_patient(upstream, patients):
    upstream.add("GET", "/fhir/Patient", upstream.bundle("p1", "p2"))
    assert patients.find_patient_id("urn:phn", "9094") == "p1"
    [req] = upstream.calls("GET", "/fhir/Patient")
    assert req.headers["accept"] == "application/fhir+json"


def test_non_json_search_response_is_upstream_error(upstream, patients):
    upstream.add(
        "GET",
        "/fhir/Patient",
        httpx.Response(200, text="<html>login</html>", headers={"content-type": "text/html"}),
    )
    with pytest.raises(UpstreamUnavailableError) as exc:
        patients.find_patient_id("urn:phn", "9094")
    assert exc.value.upstream_status == 200


def test_malformed_bundle_entries_are_skipped(upstream, patients):
    upstream.add(
        "GET",
        "/fhir/Patient",
        httpx.Response(
            200,
            json={
                "resourceType": "Bundle",
                "entry": ["x", {"resource": "y"}, {"resource": {"resourceType": "Patient", "id": "p3"}}],
            },
        ),
    )
    assert patients.find_patient_id(None, "9094") == "p3"


@pytest.mark.parametrize("body", [{"resourceType": "Bundle", "entry": ["x"]}, {"entry": {"resource": {}}}, []])
def test_bundle_without_usable_entries_is_not_found(upstream, patients, body):
    upstream.add("GET", "/fhir/Patient", httpx.Response(200, json=body))
    with pytest.raises(ResourceNotFoundError) as exc:
        patients.find_patient_id("urn:phn", "0")
    assert exc.value.key == "urn:phn|0"


def test_lookup_without_base_url_is_config_error(upstream, http_client):
    with pytest.raises(ConfigMissingError):
        FhirPatientClient(FhirSettings(base_url=None), http_client).find_patient_id("urn:phn", "1")
    assert upstream.requests == []
