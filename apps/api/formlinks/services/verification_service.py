"""Server-to-server verification of form link tokens."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formlinks.core.exceptions import PermissionDeniedError
from formlinks.core.structured_logging import build_log_context
from formlinks.db.enums import AuditEventType
from formlinks.services.collaborators import (
    ApiKeyAllowList,
    AuditEvent,
    AuditSink,
    log_audit_event,
)
from formlinks.services.token_service import LinkValidator, customer_reference_for
from formlinks.utils.datetimes import ensure_utc

logger = logging.getLogger(__name__)

# Metadata keys forwarded to trusted systems; anything else stays internal.
FORWARDED_METADATA_KEYS = ("external_project_id",)


@dataclass
class VerificationEnvelope:
    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None


class ExternalVerificationGateway:
    """
    Lets a trusted external system confirm a token is usable.

    Fails closed: an unrecognized API key never reaches the link store, and a
    valid result carries only the obfuscated customer reference.
    """

    def __init__(
        self,
        db: Session,
        *,
        validator: LinkValidator,
        api_keys: ApiKeyAllowList,
        audit: AuditSink,
    ):
        self.db = db
        self.validator = validator
        self.api_keys = api_keys
        self.audit = audit

    def _audit(self, outcome: str, form_link_id=None) -> None:
        log_audit_event(
            self.audit,
            AuditEvent(
                event_type=AuditEventType.FORM_LINK_VERIFIED,
                target_type="form_link",
                target_id=form_link_id,
                details={"outcome": outcome},
            ),
        )
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("external_verification_audit_commit_failed", exc_info=True)

    def verify(self, token: str, api_key: str | None) -> VerificationEnvelope:
        if not self.api_keys.is_allowed(api_key):
            logger.warning(
                "external_verification_denied",
                extra=build_log_context(reason=PermissionDeniedError.reason),
            )
            self._audit(PermissionDeniedError.reason)
            return VerificationEnvelope(success=False, error=PermissionDeniedError.reason)

        result = self.validator.validate(token)
        if not result.is_valid:
            form_link_id = result.form_link.id if result.form_link else None
            self._audit(result.reason, form_link_id)
            return VerificationEnvelope(success=False, error=result.reason)

        form_link = result.form_link
        metadata = form_link.link_metadata or {}
        customer_reference = metadata.get("customer_reference") or customer_reference_for(
            form_link.customer_id
        )
        data = {
            "form_link_id": form_link.id,
            "customer_reference": customer_reference,
            "customer_name": result.customer.name,
            "status": form_link.status,
            "expires_at": ensure_utc(form_link.expires_at),
            "metadata": {
                key: metadata[key]
                for key in FORWARDED_METADATA_KEYS
                if metadata.get(key) is not None
            },
        }
        self._audit("valid", form_link.id)
        logger.info(
            "external_verification_succeeded",
            extra=build_log_context(form_link_id=form_link.id),
        )
        return VerificationEnvelope(success=True, data=data)
