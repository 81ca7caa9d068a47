"""Collaborator interfaces consumed by the form-link workflow.

Components receive these at construction instead of importing process-wide
singletons. The default implementations here are database- or settings-backed;
tests and other deployments can pass their own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from formlinks.core.config import settings
from formlinks.core.constants import COMMUNICATION_CONSENT
from formlinks.core.security import verify_api_key
from formlinks.db.enums import AuditEventType, NotificationType, Role
from formlinks.db.models import AuditLog, Customer, Notification, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    event_type: AuditEventType
    target_type: str
    target_id: UUID | None
    actor_user_id: UUID | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class NotificationMessage:
    type: NotificationType
    title: str
    body: str | None = None
    user_id: UUID | None = None
    customer_id: UUID | None = None
    entity_type: str | None = None
    entity_id: UUID | None = None


class AuditSink(Protocol):
    def log(self, event: AuditEvent) -> None: ...


class NotificationEmitter(Protocol):
    def emit(self, message: NotificationMessage) -> None: ...


class PermissionChecker(Protocol):
    def can_approve(self, user_id: UUID) -> bool: ...

    def approver_ids(self) -> list[UUID]: ...


class ConsentChecker(Protocol):
    def has_consent(self, customer_id: UUID, consent_type: str) -> bool: ...


class ApiKeyAllowList(Protocol):
    def is_allowed(self, api_key: str | None) -> bool: ...


class CustomerDirectory(Protocol):
    def get_customer(self, customer_id: UUID) -> Customer | None: ...


# =============================================================================
# Default implementations
# =============================================================================


class DatabaseAuditSink:
    """Writes audit rows into the caller's unit of work."""

    def __init__(self, db: Session):
        self.db = db

    def log(self, event: AuditEvent) -> None:
        entry = AuditLog(
            actor_user_id=event.actor_user_id,
            event_type=event.event_type.value,
            target_type=event.target_type,
            target_id=event.target_id,
            details=event.details,
        )
        with self.db.begin_nested():
            self.db.add(entry)


class DatabaseNotificationEmitter:
    """Stores notifications as rows; delivery is handled downstream."""

    def __init__(self, db: Session):
        self.db = db

    def emit(self, message: NotificationMessage) -> None:
        with self.db.begin_nested():
            self.db.add(
                Notification(
                    user_id=message.user_id,
                    customer_id=message.customer_id,
                    type=message.type.value,
                    title=message.title,
                    body=message.body,
                    entity_type=message.entity_type,
                    entity_id=message.entity_id,
                )
            )


class RolePermissionChecker:
    """Any active staff user except read-only may approve or reject."""

    def __init__(self, db: Session):
        self.db = db

    def can_approve(self, user_id: UUID) -> bool:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user or not user.is_active:
            return False
        if not Role.has_value(user.role):
            return False
        return user.role != Role.READ_ONLY.value

    def approver_ids(self) -> list[UUID]:
        rows = (
            self.db.query(User.id)
            .filter(User.is_active.is_(True), User.role != Role.READ_ONLY.value)
            .all()
        )
        return [row.id for row in rows]


class CustomerConsentChecker:
    """Consent flags stored on the customer record."""

    def __init__(self, db: Session):
        self.db = db

    def has_consent(self, customer_id: UUID, consent_type: str) -> bool:
        if consent_type != COMMUNICATION_CONSENT:
            return False
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        return bool(customer and customer.communication_consent)


class SettingsApiKeyAllowList:
    """API keys configured through EXTERNAL_API_KEYS."""

    def __init__(self, keys: list[str] | None = None):
        self.keys = settings.external_api_keys_list if keys is None else keys

    def is_allowed(self, api_key: str | None) -> bool:
        return verify_api_key(api_key, self.keys)


class DatabaseCustomerDirectory:
    def __init__(self, db: Session):
        self.db = db

    def get_customer(self, customer_id: UUID) -> Customer | None:
        return (
            self.db.query(Customer)
            .filter(Customer.id == customer_id, Customer.is_deleted.is_(False))
            .first()
        )


# =============================================================================
# Best-effort helpers
# =============================================================================


def log_audit_event(audit: AuditSink, event: AuditEvent) -> None:
    """Audit is best-effort: failures never fail the primary operation."""
    try:
        audit.log(event)
    except Exception:
        logger.warning(
            "audit_log_failed",
            extra={"event_type": event.event_type.value},
            exc_info=True,
        )


def emit_notification(notifier: NotificationEmitter, message: NotificationMessage) -> None:
    try:
        notifier.emit(message)
    except Exception:
        logger.warning(
            "notification_emit_failed",
            extra={"notification_type": message.type.value},
            exc_info=True,
        )
