"""Form link issuance and validation."""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from formlinks.core.config import settings
from formlinks.core.constants import COMMUNICATION_CONSENT, TOKEN_GENERATION_MAX_ATTEMPTS
from formlinks.core.exceptions import (
    AlreadyFinalizedError,
    CollisionExhaustedError,
    ExpiredError,
    FormLinkError,
    FormValidationError,
    NotFoundError,
    PersistenceError,
)
from formlinks.core.security import (
    ReferenceObfuscationError,
    generate_form_token,
    is_well_formed_token,
    obfuscate_customer_reference,
)
from formlinks.core.structured_logging import build_log_context
from formlinks.db.enums import AuditEventType, FormLinkStatus, NotificationType
from formlinks.db.models import Customer, FormLink
from formlinks.services import form_link_service
from formlinks.services.collaborators import (
    AuditEvent,
    AuditSink,
    ConsentChecker,
    CustomerDirectory,
    NotificationEmitter,
    NotificationMessage,
    emit_notification,
    log_audit_event,
)
from formlinks.utils.datetimes import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerProjection:
    """The customer fields a public form is allowed to prefill."""

    id: uuid.UUID
    name: str
    email: str | None
    phone: str | None
    address: str | None

    @classmethod
    def from_customer(cls, customer: Customer) -> "CustomerProjection":
        return cls(
            id=customer.id,
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            address=customer.address,
        )


@dataclass
class LinkValidation:
    is_valid: bool
    reason: str | None = None
    form_link: FormLink | None = None
    customer: CustomerProjection | None = None


@dataclass
class IssuedFormLink:
    form_link: FormLink
    url: str
    customer_reference: str | None


def customer_reference_for(customer_id: uuid.UUID) -> str | None:
    """Obfuscated reference, or None when no secret is configured."""
    try:
        return obfuscate_customer_reference(customer_id)
    except ReferenceObfuscationError:
        logger.warning(
            "customer_reference_unavailable",
            extra=build_log_context(reason="obfuscation_not_configured"),
        )
        return None


def build_form_url(token: str, customer_reference: str | None) -> str:
    base = settings.FORM_LINK_BASE_URL.rstrip("/")
    url = f"{base}/form/{token}"
    if customer_reference:
        url = f"{url}?ref={customer_reference}"
    return url


class TokenIssuer:
    def __init__(
        self,
        db: Session,
        *,
        customers: CustomerDirectory,
        audit: AuditSink,
        notifier: NotificationEmitter,
        consent: ConsentChecker,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.customers = customers
        self.audit = audit
        self.notifier = notifier
        self.consent = consent
        self.clock = clock

    def _insert_with_unique_token(self, **values) -> FormLink:
        """
        Insert a FormLink under a fresh token, retrying on collision.

        A token that passes the existence check can still lose the race to a
        concurrent insert; that IntegrityError is rolled back to a savepoint
        and counts as one more attempt.
        """
        for _ in range(TOKEN_GENERATION_MAX_ATTEMPTS):
            token = generate_form_token()
            form_link = FormLink(token=token, **values)
            try:
                if form_link_service.token_exists(self.db, token):
                    continue
                with self.db.begin_nested():
                    self.db.add(form_link)
                    self.db.flush()
            except IntegrityError:
                logger.info("form_link_token_insert_collided")
                continue
            except SQLAlchemyError as exc:
                self.db.rollback()
                raise PersistenceError() from exc
            return form_link
        self.db.rollback()
        logger.error("form_link_token_collision_exhausted")
        raise CollisionExhaustedError("Could not generate a unique form link token")

    def issue(
        self,
        customer_id: uuid.UUID,
        *,
        expiration_hours: int | None = None,
        created_by: uuid.UUID | None = None,
        external_project_id: str | None = None,
        notify_customer: bool = False,
    ) -> IssuedFormLink:
        customer = self.customers.get_customer(customer_id)
        if not customer:
            raise NotFoundError("Customer not found")

        if expiration_hours is None:
            expiration_hours = settings.DEFAULT_FORM_LINK_EXPIRATION_HOURS
        if expiration_hours <= 0:
            raise FormValidationError("expiration_hours must be positive")
        if expiration_hours > settings.MAX_FORM_LINK_EXPIRATION_HOURS:
            raise FormValidationError(
                f"expiration_hours cannot exceed {settings.MAX_FORM_LINK_EXPIRATION_HOURS}"
            )

        customer_reference = customer_reference_for(customer.id)
        now = self.clock()

        form_link = self._insert_with_unique_token(
            customer_id=customer.id,
            status=FormLinkStatus.PENDING.value,
            is_used=False,
            created_at=now,
            expires_at=now + timedelta(hours=expiration_hours),
            created_by=created_by,
            link_metadata={
                "external_project_id": external_project_id,
                "customer_reference": customer_reference,
            },
        )

        log_audit_event(
            self.audit,
            AuditEvent(
                event_type=AuditEventType.FORM_LINK_CREATED,
                target_type="form_link",
                target_id=form_link.id,
                actor_user_id=created_by,
                details={
                    "customer_id": str(customer.id),
                    "expiration_hours": expiration_hours,
                    "external_project_id": external_project_id,
                },
            ),
        )

        if notify_customer:
            if self.consent.has_consent(customer.id, COMMUNICATION_CONSENT):
                emit_notification(
                    self.notifier,
                    NotificationMessage(
                        type=NotificationType.FORM_LINK_ISSUED,
                        title="Please complete your service request form",
                        body=f"The form is available until {form_link.expires_at:%Y-%m-%d %H:%M} UTC.",
                        customer_id=customer.id,
                        entity_type="form_link",
                        entity_id=form_link.id,
                    ),
                )
            else:
                logger.info(
                    "form_link_notification_skipped",
                    extra=build_log_context(
                        form_link_id=form_link.id, customer_id=customer.id, reason="no_consent"
                    ),
                )

        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError() from exc
        self.db.refresh(form_link)

        logger.info(
            "form_link_created",
            extra=build_log_context(
                form_link_id=form_link.id, customer_id=customer.id, actor_id=created_by
            ),
        )
        return IssuedFormLink(
            form_link=form_link,
            url=build_form_url(form_link.token, customer_reference),
            customer_reference=customer_reference,
        )


_REASON_ERRORS: dict[str, type[FormLinkError]] = {
    NotFoundError.reason: NotFoundError,
    ExpiredError.reason: ExpiredError,
    AlreadyFinalizedError.reason: AlreadyFinalizedError,
}


class LinkValidator:
    """
    Classifies a token as valid, NotFound, Expired or AlreadyFinalized.

    Classification is read-only; expiry is evaluated lazily against the clock.
    """

    def __init__(
        self,
        db: Session,
        *,
        customers: CustomerDirectory,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.customers = customers
        self.clock = clock

    def validate(self, token: str) -> LinkValidation:
        if not is_well_formed_token(token):
            return LinkValidation(is_valid=False, reason=NotFoundError.reason)

        form_link = form_link_service.get_form_link_by_token(self.db, token)
        if not form_link:
            return LinkValidation(is_valid=False, reason=NotFoundError.reason)

        if form_link_service.is_expired(form_link, self.clock()):
            return LinkValidation(is_valid=False, reason=ExpiredError.reason, form_link=form_link)

        if form_link.is_terminal:
            return LinkValidation(
                is_valid=False, reason=AlreadyFinalizedError.reason, form_link=form_link
            )

        customer = self.customers.get_customer(form_link.customer_id)
        if not customer:
            return LinkValidation(is_valid=False, reason=NotFoundError.reason)

        return LinkValidation(
            is_valid=True,
            form_link=form_link,
            customer=CustomerProjection.from_customer(customer),
        )

    def require_valid(self, token: str) -> LinkValidation:
        result = self.validate(token)
        if not result.is_valid:
            raise _REASON_ERRORS[result.reason]()
        return result
