"""Schemas for form links, public forms and approvals."""

from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field

from formlinks.db.enums import ApprovalAction


T = TypeVar("T")


class ApiEnvelope(BaseModel, Generic[T]):
    """Uniform response envelope: {success, data?, error?}."""

    success: bool
    data: T | None = None
    error: str | None = None
    message: str | None = None
    warnings: list[str] | None = None
    errors: dict[str, object] | None = None


# =============================================================================
# Staff: issuance and listing
# =============================================================================


class FormLinkCreate(BaseModel):
    customer_id: UUID
    expiration_hours: int | None = Field(None, ge=1)
    created_by: UUID | None = None
    external_project_id: str | None = Field(None, max_length=255)
    notify_customer: bool = False


class FormLinkIssuedRead(BaseModel):
    id: UUID
    token: str
    url: str
    status: str
    is_used: bool
    expires_at: datetime
    customer_reference: str | None = None
    external_project_id: str | None = None


class FormLinkRead(BaseModel):
    id: UUID
    customer_id: UUID
    token: str
    status: str
    lifecycle: str
    is_used: bool
    is_expired: bool
    expires_at: datetime
    created_at: datetime
    submitted_at: datetime | None
    approved_at: datetime | None
    approved_by: UUID | None
    created_by: UUID | None
    notes: str | None
    submission_data: dict[str, object] | None
    metadata: dict[str, object] | None


class FormLinkListRead(BaseModel):
    form_links: list[FormLinkRead]
    total: int
    page: int
    page_size: int
    total_pages: int


class PendingSubmissionRead(BaseModel):
    id: UUID
    customer_id: UUID
    customer_name: str
    submitted_at: datetime | None
    status: str


class SubmissionStatsRead(BaseModel):
    total_submissions: int
    pending_approval: int
    approved: int
    rejected: int
    conversion_rate: float
    average_response_seconds: float | None = None


# =============================================================================
# Public form
# =============================================================================


class CustomerFormInfo(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class PublicFormRead(BaseModel):
    form_link_id: UUID
    status: str
    expires_at: datetime
    customer: CustomerFormInfo


class SubmissionReceiptRead(BaseModel):
    form_link_id: UUID
    status: str
    submitted_at: datetime


# =============================================================================
# External verification
# =============================================================================


class ExternalVerificationRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=255)
    api_key: str | None = Field(None, max_length=512)


class ExternalVerificationData(BaseModel):
    form_link_id: UUID
    customer_reference: str | None
    customer_name: str
    status: str
    expires_at: datetime
    metadata: dict[str, object]


# =============================================================================
# Approval
# =============================================================================


class FormDecisionRequest(BaseModel):
    approver_id: UUID
    action: ApprovalAction
    notes: str | None = Field(None, max_length=5000)
    create_offer: bool = False


class OfferSynthesisRequest(BaseModel):
    actor_id: UUID


class FormDecisionRead(BaseModel):
    form_link_id: UUID
    status: str
    notes: str | None
    approved_at: datetime | None
    approved_by: UUID | None
    offer_id: UUID | None = None
    offer_number: str | None = None
    offer_detail_count: int = 0


class ApproverPermissionRead(BaseModel):
    user_id: UUID
    can_approve: bool
