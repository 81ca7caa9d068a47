"""Form link repository queries and staff-side maintenance.

Every lookup goes through ``active_links`` so soft-deleted links are filtered
at the repository boundary, not at individual call sites.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from formlinks.core.exceptions import FormValidationError, NotFoundError, PersistenceError
from formlinks.core.structured_logging import build_log_context
from formlinks.db.enums import AuditEventType, FormLinkStatus
from formlinks.db.models import Customer, FormLink
from formlinks.services.collaborators import AuditEvent, AuditSink, log_audit_event
from formlinks.utils.datetimes import Clock, ensure_utc, utc_now
from formlinks.utils.pagination import PaginatedResponse, PaginationParams, apply_sort, paginate

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "created_at": FormLink.created_at,
    "expires_at": FormLink.expires_at,
    "submitted_at": FormLink.submitted_at,
    "approved_at": FormLink.approved_at,
    "status": FormLink.status,
}


def active_links(db: Session) -> Query:
    return db.query(FormLink).filter(FormLink.is_deleted.is_(False))


def get_form_link(db: Session, form_link_id: uuid.UUID) -> FormLink | None:
    return active_links(db).filter(FormLink.id == form_link_id).first()


def get_form_link_by_token(db: Session, token: str) -> FormLink | None:
    return active_links(db).filter(FormLink.token == token).first()


def token_exists(db: Session, token: str) -> bool:
    return active_links(db).filter(FormLink.token == token).first() is not None


def is_expired(form_link: FormLink, now: datetime) -> bool:
    return now > ensure_utc(form_link.expires_at)


@dataclass
class FormLinkFilters:
    customer_id: uuid.UUID | None = None
    statuses: list[FormLinkStatus] = field(default_factory=list)
    is_used: bool | None = None
    is_expired: bool | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    created_by: uuid.UUID | None = None
    external_project_id: str | None = None


def list_form_links(
    db: Session,
    filters: FormLinkFilters,
    pagination: PaginationParams,
    *,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    now: datetime | None = None,
) -> PaginatedResponse[FormLink]:
    now = now or utc_now()
    query = active_links(db)
    if filters.customer_id:
        query = query.filter(FormLink.customer_id == filters.customer_id)
    if filters.statuses:
        query = query.filter(FormLink.status.in_([s.value for s in filters.statuses]))
    if filters.is_used is not None:
        query = query.filter(FormLink.is_used.is_(filters.is_used))
    if filters.is_expired is True:
        query = query.filter(FormLink.expires_at < now)
    elif filters.is_expired is False:
        query = query.filter(FormLink.expires_at >= now)
    if filters.created_after:
        query = query.filter(FormLink.created_at >= filters.created_after)
    if filters.created_before:
        query = query.filter(FormLink.created_at <= filters.created_before)
    if filters.created_by:
        query = query.filter(FormLink.created_by == filters.created_by)
    if filters.external_project_id:
        query = query.filter(
            FormLink.link_metadata["external_project_id"].as_string()
            == filters.external_project_id
        )

    try:
        query = apply_sort(query, SORTABLE_FIELDS, sort_by, sort_dir, FormLink.id)
    except ValueError as exc:
        raise FormValidationError(str(exc)) from exc

    return paginate(query, pagination)


def list_pending_submissions(
    db: Session, *, limit: int = 100, offset: int = 0
) -> list[tuple[FormLink, Customer]]:
    """Submitted links awaiting review, oldest submission first."""
    return (
        db.query(FormLink, Customer)
        .join(Customer, Customer.id == FormLink.customer_id)
        .filter(
            FormLink.is_deleted.is_(False),
            Customer.is_deleted.is_(False),
            FormLink.status == FormLinkStatus.SUBMITTED.value,
        )
        .order_by(FormLink.submitted_at.asc(), FormLink.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


@dataclass
class SubmissionStats:
    total_submissions: int = 0
    pending_approval: int = 0
    approved: int = 0
    rejected: int = 0
    conversion_rate: float = 0.0
    average_response_seconds: float | None = None


def get_submission_stats(
    db: Session,
    *,
    customer_id: uuid.UUID | None = None,
    submitted_from: datetime | None = None,
    submitted_to: datetime | None = None,
) -> SubmissionStats:
    query = active_links(db).filter(FormLink.submitted_at.is_not(None))
    if customer_id:
        query = query.filter(FormLink.customer_id == customer_id)
    if submitted_from:
        query = query.filter(FormLink.submitted_at >= submitted_from)
    if submitted_to:
        query = query.filter(FormLink.submitted_at <= submitted_to)

    stats = SubmissionStats()
    response_seconds: list[float] = []
    for link in query.all():
        stats.total_submissions += 1
        if link.status == FormLinkStatus.SUBMITTED.value:
            stats.pending_approval += 1
        elif link.status == FormLinkStatus.APPROVED.value:
            stats.approved += 1
            if link.submitted_at and link.approved_at:
                elapsed = (
                    ensure_utc(link.approved_at) - ensure_utc(link.submitted_at)
                ).total_seconds()
                if elapsed > 0:
                    response_seconds.append(elapsed)
        elif link.status == FormLinkStatus.REJECTED.value:
            stats.rejected += 1

    if stats.total_submissions:
        stats.conversion_rate = stats.approved / stats.total_submissions * 100
    if response_seconds:
        stats.average_response_seconds = sum(response_seconds) / len(response_seconds)
    return stats


def soft_delete_form_link(
    db: Session,
    form_link_id: uuid.UUID,
    *,
    actor_id: uuid.UUID | None,
    audit: AuditSink,
    clock: Clock = utc_now,
) -> None:
    """Flip the deleted flag; the row is kept for audit and excluded from lookups."""
    now = clock()
    try:
        updated = (
            db.query(FormLink)
            .filter(FormLink.id == form_link_id, FormLink.is_deleted.is_(False))
            .update(
                {
                    FormLink.is_deleted: True,
                    FormLink.deleted_at: now,
                    FormLink.updated_by: actor_id,
                    FormLink.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        if not updated:
            db.rollback()
            raise NotFoundError()

        log_audit_event(
            audit,
            AuditEvent(
                event_type=AuditEventType.FORM_LINK_DELETED,
                target_type="form_link",
                target_id=form_link_id,
                actor_user_id=actor_id,
            ),
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError() from exc

    logger.info("form_link_deleted", extra=build_log_context(form_link_id=form_link_id, actor_id=actor_id))
