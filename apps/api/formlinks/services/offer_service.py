"""Synthesizing sales offers from approved form submissions."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formlinks.core.constants import (
    OFFER_NUMBER_ALPHABET,
    OFFER_NUMBER_MAX_ATTEMPTS,
    OFFER_NUMBER_PREFIX,
    OFFER_NUMBER_RANDOM_LENGTH,
    OFFER_TITLE_MAX_LENGTH,
)
from formlinks.core.exceptions import (
    CollisionExhaustedError,
    FormValidationError,
    PersistenceError,
)
from formlinks.core.security import generate_random_string
from formlinks.core.structured_logging import build_log_context
from formlinks.db.enums import AuditEventType, OfferSource, OfferStatus
from formlinks.db.models import Offer, OfferDetail
from formlinks.schemas.submissions import (
    ServiceDetail,
    ServiceRequestSubmission,
    parse_submission_payload,
)
from formlinks.services.collaborators import (
    AuditEvent,
    AuditSink,
    CustomerDirectory,
    log_audit_event,
)
from formlinks.utils.datetimes import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SynthesisResult:
    success: bool
    offer: Offer | None = None
    offer_details: list[OfferDetail] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None


def offer_title(requirements: str) -> str:
    text = requirements.strip()
    if len(text) > OFFER_TITLE_MAX_LENGTH:
        return text[: OFFER_TITLE_MAX_LENGTH - 3] + "..."
    return text


def contact_comments(submission: ServiceRequestSubmission) -> str | None:
    if not submission.preferred_contact_method:
        return None
    comments = f"Preferred contact method: {submission.preferred_contact_method.value}"
    if submission.preferred_contact_time:
        comments += f", Preferred time: {submission.preferred_contact_time}"
    return comments


def build_offer_detail(offer_id: uuid.UUID, detail: ServiceDetail) -> OfferDetail:
    return OfferDetail(
        offer_id=offer_id,
        description=detail.description,
        service_category_id=detail.category_id,
        service_subcategory_id=detail.subcategory_id,
    )


class OfferSynthesizer:
    def __init__(
        self,
        db: Session,
        *,
        customers: CustomerDirectory,
        audit: AuditSink,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.customers = customers
        self.audit = audit
        self.clock = clock

    def generate_offer_number(self) -> str:
        """FORM-yyyymmdd-XXXX, retried a bounded number of times on collision."""
        date_part = self.clock().strftime("%Y%m%d")
        for _ in range(OFFER_NUMBER_MAX_ATTEMPTS):
            random_part = generate_random_string(OFFER_NUMBER_RANDOM_LENGTH, OFFER_NUMBER_ALPHABET)
            offer_number = f"{OFFER_NUMBER_PREFIX}-{date_part}-{random_part}"
            try:
                exists = (
                    self.db.query(Offer.id).filter(Offer.offer_number == offer_number).first()
                )
            except SQLAlchemyError as exc:
                self.db.rollback()
                raise PersistenceError("Failed to generate an offer number") from exc
            if not exists:
                return offer_number
        logger.error("offer_number_collision_exhausted")
        raise CollisionExhaustedError("Could not generate a unique offer number")

    def synthesize(
        self,
        submission_data: dict[str, Any] | None,
        customer_id: uuid.UUID,
        created_by: uuid.UUID | None = None,
        form_link_id: uuid.UUID | None = None,
    ) -> SynthesisResult:
        """
        Create an Offer plus its OfferDetails from a stored submission.

        Raises:
            FormValidationError: requirement text missing or customer unknown
            CollisionExhaustedError: no free offer number
            PersistenceError: the offer itself could not be written

        A detail that fails to persist is rolled back to its savepoint and
        reported in ``warnings``; the offer is kept.
        """
        submission = parse_submission_payload(submission_data or {})
        if not isinstance(submission, ServiceRequestSubmission):
            raise FormValidationError(
                "Submission has no service requirements",
                errors={"requirements": ["Service requirements are required"]},
            )
        customer = self.customers.get_customer(customer_id)
        if not customer:
            raise FormValidationError(
                "Customer could not be identified",
                errors={"customer_id": ["Customer not found"]},
            )

        warnings: list[str] = []
        customer_data = submission.customer_data
        if not customer_data or not (customer_data.email or customer_data.phone):
            warnings.append("No contact information (email or phone) provided")

        offer_number = self.generate_offer_number()
        offer = Offer(
            offer_number=offer_number,
            customer_id=customer.id,
            title=offer_title(submission.requirements),
            requirements=submission.requirements,
            customer_comments=submission.additional_notes,
            our_comments=contact_comments(submission),
            address=customer_data.address if customer_data else None,
            status=OfferStatus.PENDING.value,
            source=OfferSource.FORM.value,
            created_by=created_by,
            created_at=self.clock(),
        )
        try:
            self.db.add(offer)
            self.db.flush()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to create offer") from exc

        details = submission.service_details or [
            ServiceDetail(description=submission.requirements)
        ]
        created_details: list[OfferDetail] = []
        for index, detail in enumerate(details):
            try:
                with self.db.begin_nested():
                    offer_detail = build_offer_detail(offer.id, detail)
                    self.db.add(offer_detail)
                    self.db.flush()
                created_details.append(offer_detail)
            except SQLAlchemyError:
                logger.warning(
                    "offer_detail_create_failed",
                    extra=build_log_context(offer_id=offer.id),
                    exc_info=True,
                )
                warnings.append(f"Service detail {index + 1} could not be added to the offer")

        log_audit_event(
            self.audit,
            AuditEvent(
                event_type=AuditEventType.OFFER_CREATED_FROM_FORM,
                target_type="offer",
                target_id=offer.id,
                actor_user_id=created_by,
                details={
                    "customer_id": str(customer.id),
                    "offer_number": offer_number,
                    "detail_count": len(created_details),
                    "form_link_id": str(form_link_id) if form_link_id else None,
                },
            ),
        )

        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to create offer") from exc

        logger.info(
            "offer_created_from_form",
            extra=build_log_context(offer_id=offer.id, customer_id=customer.id, actor_id=created_by),
        )
        return SynthesisResult(
            success=True,
            offer=offer,
            offer_details=created_details,
            warnings=warnings,
        )
