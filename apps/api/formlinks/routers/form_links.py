"""Staff endpoints for issuing, listing and reviewing form links."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from formlinks.core.deps import (
    get_approval_coordinator,
    get_clock,
    get_db,
    get_token_issuer,
)
from formlinks.core.exceptions import NotFoundError
from formlinks.db.enums import FormLinkStatus
from formlinks.db.models import FormLink
from formlinks.schemas.form_links import (
    ApiEnvelope,
    ApproverPermissionRead,
    FormDecisionRead,
    FormDecisionRequest,
    FormLinkCreate,
    FormLinkIssuedRead,
    FormLinkListRead,
    FormLinkRead,
    OfferSynthesisRequest,
    PendingSubmissionRead,
    SubmissionStatsRead,
)
from formlinks.schemas.offers import OfferDetailRead, OfferRead, OfferSynthesisRead
from formlinks.services import form_link_service
from formlinks.services.approval_service import ApprovalCoordinator, ApprovalOutcome
from formlinks.services.collaborators import DatabaseAuditSink
from formlinks.services.token_service import TokenIssuer
from formlinks.utils.datetimes import Clock, ensure_utc
from formlinks.utils.pagination import PaginationParams, get_pagination

router = APIRouter(prefix="/form-links", tags=["form-links"])


def _to_read(form_link: FormLink, now: datetime) -> FormLinkRead:
    return FormLinkRead(
        id=form_link.id,
        customer_id=form_link.customer_id,
        token=form_link.token,
        status=form_link.status,
        lifecycle=form_link.lifecycle.value,
        is_used=form_link.is_used,
        is_expired=form_link_service.is_expired(form_link, now),
        expires_at=ensure_utc(form_link.expires_at),
        created_at=ensure_utc(form_link.created_at),
        submitted_at=ensure_utc(form_link.submitted_at),
        approved_at=ensure_utc(form_link.approved_at),
        approved_by=form_link.approved_by,
        created_by=form_link.created_by,
        notes=form_link.notes,
        submission_data=form_link.submission_data,
        metadata=form_link.link_metadata,
    )


def _decision_read(outcome: ApprovalOutcome) -> FormDecisionRead:
    form_link = outcome.form_link
    return FormDecisionRead(
        form_link_id=form_link.id,
        status=form_link.status,
        notes=form_link.notes,
        approved_at=ensure_utc(form_link.approved_at),
        approved_by=form_link.approved_by,
        offer_id=outcome.offer.id if outcome.offer else None,
        offer_number=outcome.offer.offer_number if outcome.offer else None,
        offer_detail_count=len(outcome.offer_details),
    )


@router.post("", response_model=ApiEnvelope[FormLinkIssuedRead], status_code=201)
def create_form_link(
    data: FormLinkCreate,
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    issued = issuer.issue(
        data.customer_id,
        expiration_hours=data.expiration_hours,
        created_by=data.created_by,
        external_project_id=data.external_project_id,
        notify_customer=data.notify_customer,
    )
    form_link = issued.form_link
    return ApiEnvelope[FormLinkIssuedRead](
        success=True,
        data=FormLinkIssuedRead(
            id=form_link.id,
            token=form_link.token,
            url=issued.url,
            status=form_link.status,
            is_used=form_link.is_used,
            expires_at=ensure_utc(form_link.expires_at),
            customer_reference=issued.customer_reference,
            external_project_id=data.external_project_id,
        ),
    )


@router.get("", response_model=ApiEnvelope[FormLinkListRead])
def list_form_links(
    customer_id: UUID | None = None,
    status: list[FormLinkStatus] | None = Query(None),
    is_used: bool | None = None,
    is_expired: bool | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    created_by: UUID | None = None,
    external_project_id: str | None = None,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    now = clock()
    filters = form_link_service.FormLinkFilters(
        customer_id=customer_id,
        statuses=status or [],
        is_used=is_used,
        is_expired=is_expired,
        created_after=created_after,
        created_before=created_before,
        created_by=created_by,
        external_project_id=external_project_id,
    )
    result = form_link_service.list_form_links(
        db, filters, pagination, sort_by=sort_by, sort_dir=sort_dir, now=now
    )
    return ApiEnvelope[FormLinkListRead](
        success=True,
        data=FormLinkListRead(
            form_links=[_to_read(link, now) for link in result.items],
            total=result.total,
            page=result.page,
            page_size=result.page_size,
            total_pages=result.total_pages,
        ),
    )


@router.get("/pending", response_model=ApiEnvelope[list[PendingSubmissionRead]])
def list_pending_submissions(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    rows = form_link_service.list_pending_submissions(db, limit=limit, offset=offset)
    return ApiEnvelope[list[PendingSubmissionRead]](
        success=True,
        data=[
            PendingSubmissionRead(
                id=form_link.id,
                customer_id=customer.id,
                customer_name=customer.name,
                submitted_at=ensure_utc(form_link.submitted_at),
                status=form_link.status,
            )
            for form_link, customer in rows
        ],
    )


@router.get("/stats", response_model=ApiEnvelope[SubmissionStatsRead])
def get_submission_stats(
    customer_id: UUID | None = None,
    submitted_from: datetime | None = None,
    submitted_to: datetime | None = None,
    db: Session = Depends(get_db),
):
    stats = form_link_service.get_submission_stats(
        db,
        customer_id=customer_id,
        submitted_from=submitted_from,
        submitted_to=submitted_to,
    )
    return ApiEnvelope[SubmissionStatsRead](
        success=True,
        data=SubmissionStatsRead(
            total_submissions=stats.total_submissions,
            pending_approval=stats.pending_approval,
            approved=stats.approved,
            rejected=stats.rejected,
            conversion_rate=stats.conversion_rate,
            average_response_seconds=stats.average_response_seconds,
        ),
    )


@router.get("/approvers/{user_id}", response_model=ApiEnvelope[ApproverPermissionRead])
def get_approver_permission(
    user_id: UUID,
    coordinator: ApprovalCoordinator = Depends(get_approval_coordinator),
):
    return ApiEnvelope[ApproverPermissionRead](
        success=True,
        data=ApproverPermissionRead(user_id=user_id, can_approve=coordinator.can_approve(user_id)),
    )


@router.get("/{form_link_id}", response_model=ApiEnvelope[FormLinkRead])
def get_form_link(
    form_link_id: UUID,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    form_link = form_link_service.get_form_link(db, form_link_id)
    if not form_link:
        raise NotFoundError()
    return ApiEnvelope[FormLinkRead](success=True, data=_to_read(form_link, clock()))


@router.delete("/{form_link_id}", response_model=ApiEnvelope)
def delete_form_link(
    form_link_id: UUID,
    actor_id: UUID | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    form_link_service.soft_delete_form_link(
        db,
        form_link_id,
        actor_id=actor_id,
        audit=DatabaseAuditSink(db),
        clock=clock,
    )
    return ApiEnvelope(success=True, message="Form link deleted")


@router.post("/{form_link_id}/decision", response_model=ApiEnvelope[FormDecisionRead])
def decide_form_submission(
    form_link_id: UUID,
    data: FormDecisionRequest,
    coordinator: ApprovalCoordinator = Depends(get_approval_coordinator),
):
    outcome = coordinator.decide(
        form_link_id,
        data.approver_id,
        data.action,
        notes=data.notes,
        create_offer=data.create_offer,
    )
    return ApiEnvelope[FormDecisionRead](
        success=True,
        data=_decision_read(outcome),
        warnings=outcome.warnings or None,
    )


@router.post("/{form_link_id}/offer", response_model=ApiEnvelope[OfferSynthesisRead], status_code=201)
def create_offer_from_submission(
    form_link_id: UUID,
    data: OfferSynthesisRequest,
    coordinator: ApprovalCoordinator = Depends(get_approval_coordinator),
):
    outcome = coordinator.synthesize_offer(form_link_id, data.actor_id)
    return ApiEnvelope[OfferSynthesisRead](
        success=True,
        data=OfferSynthesisRead(
            offer=OfferRead.model_validate(outcome.offer),
            offer_details=[OfferDetailRead.model_validate(d) for d in outcome.offer_details],
        ),
        warnings=outcome.warnings or None,
    )
