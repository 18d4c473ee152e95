"""
Callback operations invoked by the authorization server at fixed points of its flow:
authentication success (inbound SMART and federated IdP), pre context selection,
token generation (launch context resolution + access token claim injection),
post authorize, and federated user name mapping.
"""
import logging

from callback_service.authorities import Authority, map_authorities, map_federated_patient_authorities
from callback_service.claims import preferred_username
from callback_service.config import USER_NAME_PREFIX
from callback_service.context_client import ContextApiClient, LaunchContext
from callback_service.errors import ResourceNotFoundError, UnsupportedContextError
from callback_service.fhir_client import FhirPatientClient, identifier_token
from callback_service.schemas import (
    AuthenticationContext,
    AuthenticationOutcome,
    AuthorityModel,
    AuthorizationRequestDetails,
    ContextSelectionRequest,
    ContextSelectionResponse,
    LaunchResourceId,
    PostAuthorizeDetails,
    PostAuthorizeResponse,
    TokenGeneratingResponse,
    UserNameRequest,
    UserNameResponse,
    UserSession,
)

logger = logging.getLogger(__name__)

PATIENT = "Patient"


def _outcome(ctx: AuthenticationContext, authorities: list[Authority], launch: list[LaunchResourceId] | None = None):
    return AuthenticationOutcome(
        username=ctx.username,
        authorities=[AuthorityModel(**a.to_dict()) for a in authorities],
        launch_resource_ids=launch or [],
    )


def on_authenticate_success(ctx: AuthenticationContext) -> AuthenticationOutcome:
    """Inbound SMART security: grant compartment authorities from the patient claim and approved scopes."""
    logger.info("onAuthenticateSuccess: username=%s scopes=%s", ctx.username, " ".join(ctx.scopes()))
    return _outcome(ctx, map_authorities(ctx))


def on_authentication_success(ctx: AuthenticationContext) -> AuthenticationOutcome:
    """Federated patient portal login: the hdid claim names the patient; bind it as launch context too."""
    patient_id, authorities = map_federated_patient_authorities(ctx)
    logger.info(
        "User %s has authorized for patient: %s with scopes: %s",
        ctx.username,
        patient_id,
        " ".join(ctx.scopes()),
    )
    return _outcome(ctx, authorities, [LaunchResourceId(resource_type=PATIENT, resource_id=patient_id)])


def on_smart_login_pre_context_selection(req: ContextSelectionRequest) -> ContextSelectionResponse:
    """Decide whether the user must pick a launch context (standalone launch) or one is already bound."""
    session = req.user_session
    if session.launch_resource_ids:
        for res in session.launch_resource_ids:
            logger.info("Launch resourceId already set: %s/%s", res.resource_type, res.resource_id)
        return ContextSelectionResponse(selection_required=False, launch_resource_ids=session.launch_resource_ids)
    logger.info("Launch resourceIds not set; %d context choice(s) offered", len(req.choices))
    return ContextSelectionResponse(selection_required=True, choices=req.choices)


def _patient_id(context: LaunchContext, patients: FhirPatientClient | None) -> str:
    if context.resource_id:
        return context.resource_id
    value = context.identifier_value
    if not value:
        raise ResourceNotFoundError(PATIENT, "", "Patient context has neither id nor identifier")
    if patients is None:
        raise ResourceNotFoundError(
            PATIENT,
            identifier_token(context.identifier_system, value),
            "Patient context carries only an identifier and no FHIR server is configured",
        )
    return patients.find_patient_id(context.identifier_system, value)


def on_token_generating(
    session: UserSession,
    request: AuthorizationRequestDetails,
    resolver: ContextApiClient,
    patients: FhirPatientClient | None = None,
) -> TokenGeneratingResponse:
    """
    Just before the access token is issued: resolve the opaque launch parameter through the
    context API and bind the resulting patient to the session and to the token's `patient` claim.
    """
    logger.info(
        "onTokenGenerating: username=%s external=%s fhirUser=%s",
        session.username,
        session.external,
        session.fhir_user_url,
    )
    for res in session.launch_resource_ids:
        logger.info("UserSession launch resourceId: %s/%s", res.resource_type, res.resource_id)
    logger.info("Client ID: %s Member ID: %s Launch: %s", request.client_id, request.member_id, request.launch)

    bindings = list(session.launch_resource_ids)
    if not request.launch:
        logger.warning("No launch parameter found; not an EHR launch")
        return TokenGeneratingResponse(launch_resource_ids=bindings)

    context = resolver.resolve(request.launch)
    if context.resource_type != PATIENT:
        logger.warning("Context resourceType not supported: %s", context.resource_type)
        raise UnsupportedContextError(context.resource_type)

    patient_id = _patient_id(context, patients)
    binding = LaunchResourceId(resource_type=PATIENT, resource_id=patient_id)
    if binding not in bindings:
        bindings.append(binding)
    logger.info("UserSession: addLaunchResourceId for patient: %s", patient_id)
    return TokenGeneratingResponse(launch_resource_ids=bindings, access_token_claims={"patient": patient_id})


def on_post_authorize(details: PostAuthorizeDetails) -> PostAuthorizeResponse:
    """Token issued, not yet returned to the client. Audit only; the token itself is never logged."""
    scopes = list(details.scopes())
    logger.info("Granted scopes: %s", " ".join(scopes))
    practitioner = details.practitioner_identifier()
    if practitioner:
        logger.info("Requesting practitioner: %s", practitioner)
    return PostAuthorizeResponse(granted_scopes=scopes)


def get_user_name(req: UserNameRequest) -> UserNameResponse:
    """Local user name for a federated login."""
    return UserNameResponse(username=USER_NAME_PREFIX + preferred_username(req.user_info))
