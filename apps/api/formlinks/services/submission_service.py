"""Recording the single submission a form link accepts."""

import html
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formlinks.core.exceptions import AlreadyUsedError, PersistenceError
from formlinks.core.structured_logging import build_log_context
from formlinks.db.enums import AuditEventType, FormLinkStatus, NotificationType
from formlinks.db.models import FormLink
from formlinks.schemas.submissions import parse_submission_payload
from formlinks.services.collaborators import (
    AuditEvent,
    AuditSink,
    NotificationEmitter,
    NotificationMessage,
    PermissionChecker,
    emit_notification,
    log_audit_event,
)
from formlinks.services.token_service import LinkValidator
from formlinks.utils.datetimes import Clock, utc_now

logger = logging.getLogger(__name__)


def escape_text(value: str) -> str:
    """HTML-entity escape & < > " ' and /."""
    return html.escape(value, quote=True).replace("/", "&#x2F;")


def sanitize_payload(value: Any) -> Any:
    """Escape every string leaf of a JSON-like structure."""
    if isinstance(value, str):
        return escape_text(value)
    if isinstance(value, dict):
        return {key: sanitize_payload(item) for key, item in value.items()}
    if isinstance(value, list):
        return [sanitize_payload(item) for item in value]
    return value


@dataclass
class SubmissionReceipt:
    form_link_id: uuid.UUID
    customer_id: uuid.UUID
    submitted_at: datetime
    status: str


class SubmissionRecorder:
    def __init__(
        self,
        db: Session,
        *,
        validator: LinkValidator,
        audit: AuditSink,
        notifier: NotificationEmitter,
        permissions: PermissionChecker,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.validator = validator
        self.audit = audit
        self.notifier = notifier
        self.permissions = permissions
        self.clock = clock

    def submit(self, token: str, payload: Any) -> SubmissionReceipt:
        form_link = self.validator.require_valid(token).form_link
        if form_link.is_used or form_link.status != FormLinkStatus.PENDING.value:
            raise AlreadyUsedError()

        submission = parse_submission_payload(payload)
        submission_data = sanitize_payload(submission.model_dump(mode="json", exclude_none=True))
        form_link_id = form_link.id
        customer_id = form_link.customer_id
        now = self.clock()

        try:
            updated = (
                self.db.query(FormLink)
                .filter(
                    FormLink.id == form_link_id,
                    FormLink.status == FormLinkStatus.PENDING.value,
                    FormLink.is_used.is_(False),
                    FormLink.is_deleted.is_(False),
                )
                .update(
                    {
                        FormLink.is_used: True,
                        FormLink.status: FormLinkStatus.SUBMITTED.value,
                        FormLink.submitted_at: now,
                        FormLink.submission_data: submission_data,
                        FormLink.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError() from exc

        if not updated:
            # Another writer recorded a submission first
            self.db.rollback()
            logger.info(
                "form_submission_rejected",
                extra=build_log_context(form_link_id=form_link_id, reason=AlreadyUsedError.reason),
            )
            raise AlreadyUsedError()

        log_audit_event(
            self.audit,
            AuditEvent(
                event_type=AuditEventType.FORM_SUBMISSION_RECEIVED,
                target_type="form_link",
                target_id=form_link_id,
                details={
                    "customer_id": str(customer_id),
                    "template": submission.template,
                },
            ),
        )
        self._notify_approvers(form_link_id, customer_id)

        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError() from exc

        logger.info(
            "form_submission_received",
            extra=build_log_context(form_link_id=form_link_id, customer_id=customer_id),
        )
        return SubmissionReceipt(
            form_link_id=form_link_id,
            customer_id=customer_id,
            submitted_at=now,
            status=FormLinkStatus.SUBMITTED.value,
        )

    def _notify_approvers(self, form_link_id: uuid.UUID, customer_id: uuid.UUID) -> None:
        try:
            approver_ids = self.permissions.approver_ids()
        except Exception:
            logger.warning(
                "notify_approvers_failed",
                extra=build_log_context(form_link_id=form_link_id),
                exc_info=True,
            )
            return

        for user_id in approver_ids:
            emit_notification(
                self.notifier,
                NotificationMessage(
                    type=NotificationType.FORM_SUBMISSION_RECEIVED,
                    title="New form submission awaiting approval",
                    user_id=user_id,
                    customer_id=customer_id,
                    entity_type="form_link",
                    entity_id=form_link_id,
                ),
            )
