"""Versioned submission payloads for public forms.

Payloads are a tagged union keyed by ``template``. A payload without a
``template`` key is treated as the default service-request form. Unknown
templates, unknown fields and malformed shapes are rejected at submission time.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from formlinks.core.exceptions import FormValidationError
from formlinks.db.enums import ContactMethod


SERVICE_REQUEST_V1 = "service_request.v1"
CONTACT_UPDATE_V1 = "contact_update.v1"
DEFAULT_TEMPLATE = SERVICE_REQUEST_V1


class SubmissionModel(BaseModel):
    """Accepts snake_case or camelCase keys; forbids unknown fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class CustomerData(SubmissionModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class ServiceDetail(SubmissionModel):
    description: str = Field(..., min_length=1)
    category_id: str | None = None
    subcategory_id: str | None = None


class FormMetadata(SubmissionModel):
    submit_time: str | None = None
    browser_info: str | None = None
    form_version: str | None = None


class ServiceRequestSubmission(SubmissionModel):
    template: Literal["service_request.v1"] = SERVICE_REQUEST_V1
    customer_data: CustomerData | None = None
    requirements: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("requirements", "serviceRequirements", "service_requirements"),
    )
    service_details: list[ServiceDetail] = Field(default_factory=list, max_length=50)
    additional_notes: str | None = None
    preferred_contact_method: ContactMethod | None = None
    preferred_contact_time: str | None = None
    attachments: list[str] = Field(default_factory=list, max_length=20)
    form_metadata: FormMetadata | None = None

    @field_validator("requirements")
    @classmethod
    def _requirements_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Service requirements are required")
        return value


class ContactUpdateSubmission(SubmissionModel):
    template: Literal["contact_update.v1"]
    customer_data: CustomerData
    additional_notes: str | None = None
    preferred_contact_method: ContactMethod | None = None
    preferred_contact_time: str | None = None
    form_metadata: FormMetadata | None = None


SubmissionPayload = Annotated[
    Union[ServiceRequestSubmission, ContactUpdateSubmission],
    Field(discriminator="template"),
]
_payload_adapter: TypeAdapter[SubmissionPayload] = TypeAdapter(SubmissionPayload)


def _format_errors(exc: ValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "payload"
        errors.setdefault(loc, []).append(err.get("msg", "Invalid value"))
    return errors


def parse_submission_payload(payload: Any) -> ServiceRequestSubmission | ContactUpdateSubmission:
    """Validate a raw payload against the template union."""
    if not isinstance(payload, dict):
        raise FormValidationError("Submission payload must be an object")
    data = dict(payload)
    data.setdefault("template", DEFAULT_TEMPLATE)
    try:
        return _payload_adapter.validate_python(data)
    except ValidationError as exc:
        raise FormValidationError("Form data has validation errors", errors=_format_errors(exc)) from exc
