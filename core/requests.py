"""
Typed Registry Requests
=======================
One request model per registry operation, tagged by an ``operation`` literal.

Transports hand the registry a request object (or a plain mapping turned into
one by ``parse_request``) together with the authenticated caller; the
registry dispatches on the request type.
"""

from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, TypeAdapter, ValidationError

from core.exceptions import InvalidArgumentError


class RegistryRequest(BaseModel):
    """Base class of all request variants."""

    model_config = ConfigDict(frozen=True, extra="forbid")


# =============================================================================
# Patients
# =============================================================================


class AddPatientRequest(RegistryRequest):
    operation: Literal["add_patient"] = "add_patient"
    account: str
    name: str
    age: StrictInt
    address: str


class ModifyPatientRequest(RegistryRequest):
    operation: Literal["modify_patient"] = "modify_patient"
    account: str
    name: str
    age: StrictInt
    address: str


class RemovePatientRequest(RegistryRequest):
    operation: Literal["remove_patient"] = "remove_patient"
    account: str


class GetPatientRequest(RegistryRequest):
    operation: Literal["get_patient"] = "get_patient"
    account: str


class IsPatientRegisteredRequest(RegistryRequest):
    operation: Literal["is_patient_registered"] = "is_patient_registered"
    account: str


# =============================================================================
# Practitioners
# =============================================================================


class AddPractitionerRequest(RegistryRequest):
    operation: Literal["add_practitioner"] = "add_practitioner"
    account: str
    name: str
    age: StrictInt
    address: str


class ModifyPractitionerRequest(RegistryRequest):
    operation: Literal["modify_practitioner"] = "modify_practitioner"
    account: str
    name: str
    age: StrictInt
    address: str


class RemovePractitionerRequest(RegistryRequest):
    operation: Literal["remove_practitioner"] = "remove_practitioner"
    account: str


class GetPractitionerRequest(RegistryRequest):
    operation: Literal["get_practitioner"] = "get_practitioner"
    account: str


class IsPractitionerRegisteredRequest(RegistryRequest):
    operation: Literal["is_practitioner_registered"] = "is_practitioner_registered"
    account: str


# =============================================================================
# Authorization relation
# =============================================================================


class AuthorizePatientForPractitionerRequest(RegistryRequest):
    operation: Literal["authorize_patient_for_practitioner"] = "authorize_patient_for_practitioner"
    practitioner: str
    patient: str


class CancelPatientForPractitionerRequest(RegistryRequest):
    operation: Literal["cancel_patient_for_practitioner"] = "cancel_patient_for_practitioner"
    practitioner: str
    patient: str


class GetAuthorizationRequest(RegistryRequest):
    operation: Literal["get_authorization"] = "get_authorization"
    practitioner: str
    patient: str


# =============================================================================
# Monitoring payload
# =============================================================================


class PublishParametersRequest(RegistryRequest):
    operation: Literal["publish_parameters"] = "publish_parameters"
    payload: str


class GetParametersRequest(RegistryRequest):
    operation: Literal["get_parameters"] = "get_parameters"
    account: str


# =============================================================================
# Public introspection
# =============================================================================


class GetPatientCountRequest(RegistryRequest):
    operation: Literal["get_patient_count"] = "get_patient_count"


class GetPractitionerCountRequest(RegistryRequest):
    operation: Literal["get_practitioner_count"] = "get_practitioner_count"


class GetAuthorityRequest(RegistryRequest):
    operation: Literal["get_authority"] = "get_authority"


AnyRegistryRequest = Annotated[
    Union[
        AddPatientRequest,
        ModifyPatientRequest,
        RemovePatientRequest,
        GetPatientRequest,
        IsPatientRegisteredRequest,
        AddPractitionerRequest,
        ModifyPractitionerRequest,
        RemovePractitionerRequest,
        GetPractitionerRequest,
        IsPractitionerRegisteredRequest,
        AuthorizePatientForPractitionerRequest,
        CancelPatientForPractitionerRequest,
        GetAuthorizationRequest,
        PublishParametersRequest,
        GetParametersRequest,
        GetPatientCountRequest,
        GetPractitionerCountRequest,
        GetAuthorityRequest,
    ],
    Field(discriminator="operation"),
]

_request_adapter = TypeAdapter(AnyRegistryRequest)


def parse_request(data: Mapping[str, Any]) -> RegistryRequest:
    """
    Build the request variant named by ``data["operation"]``.

    Raises:
        InvalidArgumentError: Unknown operation, missing or mistyped fields.
    """
    try:
        return _request_adapter.validate_python(dict(data))
    except ValidationError as e:
        raise InvalidArgumentError(
            "request",
            "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
                for err in e.errors()
            ),
            value=data.get("operation"),
        ) from e
