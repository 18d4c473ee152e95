"""
Authority mapping: approved SMART scopes + identity claims -> host permissions.

Permissions follow the host's user authority shape {permission, argument}; compartment
permissions take the compartment owner (e.g. Patient/123) as argument.
SMART v1 (patient/*.read, patient/*.write, patient/*.*) and v2 (patient/*.rs,
patient/*.cruds, ...) wildcard patient scopes are understood.
"""
import logging
import re
from dataclasses import asdict, dataclass

from callback_service.claims import (
    AuthenticationContext,
    hdid_claim,
    patient_claim,
    practitioner_claim,
)
from callback_service.errors import ClaimMissingError

logger = logging.getLogger(__name__)

FHIR_CAPABILITIES = "FHIR_CAPABILITIES"
FHIR_READ_ALL_IN_COMPARTMENT = "FHIR_READ_ALL_IN_COMPARTMENT"
FHIR_WRITE_ALL_IN_COMPARTMENT = "FHIR_WRITE_ALL_IN_COMPARTMENT"

# patient/*.<permissions>; v2 permissions are an ordered subset of "cruds"
_PATIENT_WILDCARD_SCOPE = re.compile(r"^patient/\*\.(read|write|\*|c?r?u?d?s?)$")


@dataclass(frozen=True)
class Authority:
    permission: str
    argument: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _dedupe(authorities: list[Authority]) -> list[Authority]:
    return list(dict.fromkeys(authorities))


def compartment_access(scopes) -> tuple[bool, bool]:
    """Return (read, write) compartment access granted by wildcard patient scopes."""
    read = write = False
    for scope in scopes:
        match = _PATIENT_WILDCARD_SCOPE.match(scope)
        if not match or not match.group(1):
            continue
        perms = match.group(1)
        if perms == "*":
            read = write = True
        elif perms == "read":
            read = True
        elif perms == "write":
            write = True
        else:
            read = read or "r" in perms or "s" in perms
            write = write or any(p in perms for p in "cud")
    return read, write


def map_patient_authorities(ctx: AuthenticationContext) -> list[Authority]:
    """Authorities for a SMART-launched session bound to the `patient` claim."""
    patient_id = patient_claim(ctx)
    if patient_id is None:
        return []
    patient_ref = f"Patient/{patient_id}"
    authorities = [Authority(FHIR_CAPABILITIES)]
    read, write = compartment_access(ctx.scopes())
    if read:
        authorities.append(Authority(FHIR_READ_ALL_IN_COMPARTMENT, patient_ref))
    if write:
        authorities.append(Authority(FHIR_WRITE_ALL_IN_COMPARTMENT, patient_ref))
    logger.debug("patient authorities for %s: read=%s write=%s", patient_ref, read, write)
    return authorities


def map_practitioner_authorities(ctx: AuthenticationContext) -> list[Authority]:
    """A practitioner only gets capability access here; data access comes from host user permissions."""
    if practitioner_claim(ctx) is None:
        return []
    return [Authority(FHIR_CAPABILITIES)]


def map_authorities(ctx: AuthenticationContext) -> list[Authority]:
    return _dedupe(map_practitioner_authorities(ctx) + map_patient_authorities(ctx))


def map_federated_patient_authorities(ctx: AuthenticationContext) -> tuple[str, list[Authority]]:
    """
    Patient portal login: the IdP asserts the patient through the `hdid` claim and
    the user gets read/write over that patient's compartment. Returns (patient_id, authorities).
    """
    patient_id = hdid_claim(ctx)
    if patient_id is None:
        raise ClaimMissingError("hdid")
    patient_ref = f"Patient/{patient_id}"
    return patient_id, [
        Authority(FHIR_READ_ALL_IN_COMPARTMENT, patient_ref),
        Authority(FHIR_WRITE_ALL_IN_COMPARTMENT, patient_ref),
    ]
