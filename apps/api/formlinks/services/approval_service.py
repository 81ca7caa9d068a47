"""Staff decisions on submitted forms."""

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formlinks.core.exceptions import (
    FormLinkError,
    FormValidationError,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
)
from formlinks.core.structured_logging import build_log_context
from formlinks.db.enums import (
    ApprovalAction,
    AuditEventType,
    FormLinkStatus,
    NotificationType,
)
from formlinks.db.models import AuditLog, FormLink, Offer, OfferDetail
from formlinks.services import form_link_service
from formlinks.services.collaborators import (
    AuditEvent,
    AuditSink,
    NotificationEmitter,
    NotificationMessage,
    PermissionChecker,
    emit_notification,
    log_audit_event,
)
from formlinks.services.offer_service import OfferSynthesizer, SynthesisResult
from formlinks.utils.datetimes import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ApprovalOutcome:
    form_link: FormLink
    offer: Offer | None = None
    offer_details: list[OfferDetail] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class ApprovalCoordinator:
    """
    Moves a submitted link to approved or rejected, once.

    The terminal write is a compare-and-swap on ``status == submitted``, so
    when two staff members decide at the same time the first writer wins and
    the other gets InvalidStateTransitionError. Offer synthesis runs after the
    approval is committed; its failure is returned as a warning.
    """

    def __init__(
        self,
        db: Session,
        *,
        permissions: PermissionChecker,
        synthesizer: OfferSynthesizer,
        audit: AuditSink,
        notifier: NotificationEmitter,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.permissions = permissions
        self.synthesizer = synthesizer
        self.audit = audit
        self.notifier = notifier
        self.clock = clock

    def can_approve(self, user_id: uuid.UUID) -> bool:
        return self.permissions.can_approve(user_id)

    def _load(self, form_link_id: uuid.UUID) -> FormLink:
        form_link = form_link_service.get_form_link(self.db, form_link_id)
        if not form_link:
            raise NotFoundError()
        return form_link

    def _require_permission(self, user_id: uuid.UUID) -> None:
        if not self.permissions.can_approve(user_id):
            raise PermissionDeniedError("User is not allowed to review form submissions")

    def decide(
        self,
        form_link_id: uuid.UUID,
        approver_id: uuid.UUID,
        action: ApprovalAction,
        *,
        notes: str | None = None,
        create_offer: bool = False,
    ) -> ApprovalOutcome:
        form_link = self._load(form_link_id)
        if form_link.status != FormLinkStatus.SUBMITTED.value:
            raise InvalidStateTransitionError(
                f"Cannot {action.value} a form link in status '{form_link.status}'"
            )
        self._require_permission(approver_id)

        notes = notes.strip() if notes else None
        if action == ApprovalAction.REJECT and not notes:
            raise FormValidationError(
                "A reason is required when rejecting a submission",
                errors={"notes": ["Rejection reason is required"]},
            )

        now = self.clock()
        values = {
            FormLink.notes: notes,
            FormLink.updated_by: approver_id,
            FormLink.updated_at: now,
        }
        if action == ApprovalAction.APPROVE:
            new_status = FormLinkStatus.APPROVED
            values.update({FormLink.approved_at: now, FormLink.approved_by: approver_id})
        else:
            new_status = FormLinkStatus.REJECTED
        values[FormLink.status] = new_status.value

        try:
            updated = (
                self.db.query(FormLink)
                .filter(
                    FormLink.id == form_link_id,
                    FormLink.status == FormLinkStatus.SUBMITTED.value,
                    FormLink.is_deleted.is_(False),
                )
                .update(values, synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError() from exc

        if not updated:
            self.db.rollback()
            logger.info(
                "form_decision_lost_race",
                extra=build_log_context(form_link_id=form_link_id, actor_id=approver_id),
            )
            raise InvalidStateTransitionError("This submission has already been reviewed")

        log_audit_event(
            self.audit,
            AuditEvent(
                event_type=(
                    AuditEventType.FORM_SUBMISSION_APPROVED
                    if new_status == FormLinkStatus.APPROVED
                    else AuditEventType.FORM_SUBMISSION_REJECTED
                ),
                target_type="form_link",
                target_id=form_link_id,
                actor_user_id=approver_id,
                details={"create_offer": create_offer},
            ),
        )
        if form_link.created_by and form_link.created_by != approver_id:
            emit_notification(
                self.notifier,
                NotificationMessage(
                    type=NotificationType.FORM_SUBMISSION_DECIDED,
                    title=f"Form submission {new_status.value}",
                    body=notes,
                    user_id=form_link.created_by,
                    customer_id=form_link.customer_id,
                    entity_type="form_link",
                    entity_id=form_link_id,
                ),
            )

        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError() from exc
        self.db.refresh(form_link)

        logger.info(
            "form_submission_decided",
            extra=build_log_context(
                form_link_id=form_link_id, actor_id=approver_id, reason=new_status.value
            ),
        )

        outcome = ApprovalOutcome(form_link=form_link)
        if new_status == FormLinkStatus.APPROVED and create_offer:
            self._apply_synthesis(outcome, self._run_synthesis(form_link, approver_id))
        return outcome

    def _offer_exists_for(self, form_link_id: uuid.UUID) -> bool:
        return (
            self.db.query(AuditLog.id)
            .filter(
                AuditLog.event_type == AuditEventType.OFFER_CREATED_FROM_FORM.value,
                AuditLog.details["form_link_id"].as_string() == str(form_link_id),
            )
            .first()
            is not None
        )

    def synthesize_offer(self, form_link_id: uuid.UUID, actor_id: uuid.UUID) -> ApprovalOutcome:
        """Create the offer for an approved link whose earlier synthesis failed."""
        form_link = self._load(form_link_id)
        if form_link.status != FormLinkStatus.APPROVED.value:
            raise InvalidStateTransitionError("Offers can only be created from approved submissions")
        self._require_permission(actor_id)

        try:
            if self._offer_exists_for(form_link_id):
                raise InvalidStateTransitionError(
                    "An offer has already been created from this submission"
                )
            result = self.synthesizer.synthesize(
                form_link.submission_data,
                form_link.customer_id,
                created_by=actor_id,
                form_link_id=form_link_id,
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to create offer") from exc
        outcome = ApprovalOutcome(form_link=form_link)
        self._apply_synthesis(outcome, result)
        return outcome

    def _run_synthesis(self, form_link: FormLink, actor_id: uuid.UUID) -> SynthesisResult:
        try:
            return self.synthesizer.synthesize(
                form_link.submission_data,
                form_link.customer_id,
                created_by=actor_id,
                form_link_id=form_link.id,
            )
        except FormLinkError as exc:
            logger.warning(
                "offer_synthesis_failed",
                extra=build_log_context(form_link_id=form_link.id, reason=exc.reason),
                exc_info=True,
            )
            return SynthesisResult(success=False, error=exc.reason, warnings=[exc.message])
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning(
                "offer_synthesis_failed",
                extra=build_log_context(form_link_id=form_link.id, reason=PersistenceError.reason),
                exc_info=True,
            )
            return SynthesisResult(success=False, error=PersistenceError.reason)

    @staticmethod
    def _apply_synthesis(outcome: ApprovalOutcome, result: SynthesisResult) -> None:
        outcome.offer = result.offer
        outcome.offer_details = list(result.offer_details)
        if not result.success:
            outcome.warnings.append("Form approved but offer could not be created")
        outcome.warnings.extend(result.warnings)
