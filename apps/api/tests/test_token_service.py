"""Tests for form link issuance and validation."""

import logging
import uuid
from datetime import timedelta

import pytest

from formlinks.core.config import settings
from formlinks.core.exceptions import (
    AlreadyFinalizedError,
    CollisionExhaustedError,
    ExpiredError,
    FormValidationError,
    NotFoundError,
)
from formlinks.core.security import TOKEN_PATTERN, obfuscate_customer_reference
from formlinks.db.enums import (
    ApprovalAction,
    AuditEventType,
    FormLinkLifecycle,
    FormLinkStatus,
    NotificationType,
)
from formlinks.db.models import AuditLog, Customer, FormLink, Notification
from formlinks.services import form_link_service, token_service
from formlinks.services.collaborators import DatabaseAuditSink, DatabaseNotificationEmitter
from formlinks.utils.datetimes import ensure_utc


def _submit(components, token):
    return components.recorder.submit(token, {"requirements": "Install 3 units"})


# =============================================================================
# Issuance
# =============================================================================

def test_issue_creates_pending_link(db, components, customer, clock):
    issued = components.issuer.issue(customer.id, expiration_hours=24)
    link = issued.form_link

    assert link.status == FormLinkStatus.PENDING.value
    assert link.is_used is False
    assert ensure_utc(link.expires_at) == clock.now + timedelta(hours=24)
    assert ensure_utc(link.expires_at) > ensure_utc(link.created_at)
    assert link.lifecycle == FormLinkLifecycle.PENDING


def test_issue_uses_default_expiration(components, customer, clock):
    issued = components.issuer.issue(customer.id)

    expected = clock.now + timedelta(hours=settings.DEFAULT_FORM_LINK_EXPIRATION_HOURS)
    assert ensure_utc(issued.form_link.expires_at) == expected


def test_tokens_are_well_formed_and_unique(components, customer):
    tokens = {components.issuer.issue(customer.id).form_link.token for _ in range(25)}

    assert len(tokens) == 25
    for token in tokens:
        assert len(token) == 32
        assert TOKEN_PATTERN.fullmatch(token)


@pytest.mark.parametrize("hours", [0, -1, settings.MAX_FORM_LINK_EXPIRATION_HOURS + 1])
def test_issue_rejects_invalid_expiration(components, customer, hours):
    with pytest.raises(FormValidationError):
        components.issuer.issue(customer.id, expiration_hours=hours)


def test_issue_unknown_customer_is_not_found(components):
    with pytest.raises(NotFoundError):
        components.issuer.issue(uuid.uuid4())


def test_issue_deleted_customer_is_not_found(db, components, customer):
    customer.is_deleted = True
    db.commit()

    with pytest.raises(NotFoundError):
        components.issuer.issue(customer.id)


def test_url_carries_obfuscated_reference(components, customer):
    issued = components.issuer.issue(customer.id, external_project_id="PRJ-7")

    reference = obfuscate_customer_reference(customer.id)
    assert issued.url == f"{settings.FORM_LINK_BASE_URL}/form/{issued.form_link.token}?ref={reference}"
    assert str(customer.id) not in issued.url
    assert issued.form_link.link_metadata == {
        "external_project_id": "PRJ-7",
        "customer_reference": reference,
    }


def test_url_falls_back_without_reference_secret(monkeypatch, components, customer):
    monkeypatch.setattr(settings, "CUSTOMER_REFERENCE_SECRET", "")

    issued = components.issuer.issue(customer.id)

    assert issued.customer_reference is None
    assert issued.url == f"{settings.FORM_LINK_BASE_URL}/form/{issued.form_link.token}"


def test_issue_writes_audit_event(db, components, customer, approver):
    issued = components.issuer.issue(customer.id, created_by=approver.id)

    entry = db.query(AuditLog).filter(AuditLog.target_id == issued.form_link.id).one()
    assert entry.event_type == AuditEventType.FORM_LINK_CREATED.value
    assert entry.actor_user_id == approver.id
    assert issued.form_link.token not in str(entry.details)


def test_issue_notifies_customer_only_with_consent(db, components, customer):
    other = Customer(name="No Consent Ltd", email="x@example.test", communication_consent=False)
    db.add(other)
    db.commit()

    with_consent = components.issuer.issue(customer.id, notify_customer=True)
    without_consent = components.issuer.issue(other.id, notify_customer=True)

    notified = {
        n.entity_id
        for n in db.query(Notification).filter(
            Notification.type == NotificationType.FORM_LINK_ISSUED.value
        )
    }
    assert with_consent.form_link.id in notified
    assert without_consent.form_link.id not in notified


def test_token_collision_exhaustion(monkeypatch, components, customer):
    existing = components.issuer.issue(customer.id).form_link.token
    monkeypatch.setattr(token_service, "generate_form_token", lambda: existing)

    with pytest.raises(CollisionExhaustedError):
        components.issuer.issue(customer.id)


def test_token_collision_retries_before_giving_up(monkeypatch, components, customer):
    existing = components.issuer.issue(customer.id).form_link.token
    candidates = iter([existing, existing, "B" * 32])
    monkeypatch.setattr(token_service, "generate_form_token", lambda: next(candidates))

    issued = components.issuer.issue(customer.id)

    assert issued.form_link.token == "B" * 32


def test_audit_failure_does_not_fail_issuance(monkeypatch, components, customer):
    def broken_log(self, event):
        raise RuntimeError("audit store down")

    monkeypatch.setattr(DatabaseAuditSink, "log", broken_log)

    issued = components.issuer.issue(customer.id)

    assert issued.form_link.status == FormLinkStatus.PENDING.value


# =============================================================================
# Validation
# =============================================================================

def test_validate_valid_link_returns_customer_projection(components, customer):
    token = components.issuer.issue(customer.id).form_link.token

    result = components.validator.validate(token)

    assert result.is_valid
    assert result.reason is None
    assert result.customer.name == customer.name
    assert result.customer.email == customer.email


@pytest.mark.parametrize("token", ["", "short", "A" * 31 + "!", "A" * 33])
def test_malformed_token_is_not_found(components, token):
    result = components.validator.validate(token)

    assert not result.is_valid
    assert result.reason == NotFoundError.reason


def test_unknown_token_is_not_found(components):
    result = components.validator.validate("A" * 32)

    assert result.reason == NotFoundError.reason


def test_validation_is_idempotent(db, components, customer):
    link = components.issuer.issue(customer.id).form_link
    before = (link.status, link.is_used, link.updated_at)

    first = components.validator.validate(link.token)
    second = components.validator.validate(link.token)

    db.refresh(link)
    assert (first.is_valid, first.reason) == (second.is_valid, second.reason)
    assert (link.status, link.is_used, link.updated_at) == before


def test_expiry_is_monotonic(components, customer, clock):
    token = components.issuer.issue(customer.id, expiration_hours=1).form_link.token

    clock.advance(minutes=59)
    assert components.validator.validate(token).is_valid

    clock.advance(minutes=2)
    assert components.validator.validate(token).reason == ExpiredError.reason

    clock.advance(days=30)
    assert components.validator.validate(token).reason == ExpiredError.reason


def test_finalized_link_reports_already_finalized(components, customer, approver):
    link = components.issuer.issue(customer.id).form_link
    _submit(components, link.token)
    components.coordinator.decide(link.id, approver.id, ApprovalAction.APPROVE)

    result = components.validator.validate(link.token)

    assert result.reason == AlreadyFinalizedError.reason


def test_expired_wins_over_finalized(components, customer, approver, clock):
    link = components.issuer.issue(customer.id, expiration_hours=1).form_link
    _submit(components, link.token)
    components.coordinator.decide(link.id, approver.id, ApprovalAction.REJECT, notes="duplicate")

    clock.advance(hours=2)

    assert components.validator.validate(link.token).reason == ExpiredError.reason


def test_submitted_link_is_still_valid_for_reading(components, customer):
    link = components.issuer.issue(customer.id).form_link
    _submit(components, link.token)

    result = components.validator.validate(link.token)

    assert result.is_valid
    assert result.form_link.status == FormLinkStatus.SUBMITTED.value


def test_soft_deleted_link_is_not_found(db, components, customer):
    link = components.issuer.issue(customer.id).form_link

    form_link_service.soft_delete_form_link(
        db, link.id, actor_id=None, audit=DatabaseAuditSink(db)
    )

    assert components.validator.validate(link.token).reason == NotFoundError.reason
    stored = db.query(FormLink).filter(FormLink.id == link.id).one()
    assert stored.lifecycle == FormLinkLifecycle.DELETED


def test_require_valid_raises_matching_error(components, customer, clock):
    token = components.issuer.issue(customer.id, expiration_hours=1).form_link.token
    clock.advance(hours=2)

    with pytest.raises(ExpiredError):
        components.validator.require_valid(token)

    with pytest.raises(NotFoundError):
        components.validator.require_valid("Z" * 32)


def test_token_lost_to_concurrent_insert_is_retried(db, monkeypatch, components, customer):
    existing = components.issuer.issue(customer.id).form_link.token
    # Another writer inserted the token after the existence check
    monkeypatch.setattr(form_link_service, "token_exists", lambda session, token: False)
    candidates = iter([existing, existing, "C" * 32])
    monkeypatch.setattr(token_service, "generate_form_token", lambda: next(candidates))

    issued = components.issuer.issue(customer.id)

    assert issued.form_link.token == "C" * 32
    assert f"/form/{'C' * 32}" in issued.url
    assert db.query(FormLink).count() == 2


def test_concurrent_insert_collisions_exhaust_attempts(db, monkeypatch, components, customer):
    existing = components.issuer.issue(customer.id).form_link.token
    monkeypatch.setattr(form_link_service, "token_exists", lambda session, token: False)
    monkeypatch.setattr(token_service, "generate_form_token", lambda: existing)

    with pytest.raises(CollisionExhaustedError):
        components.issuer.issue(customer.id)

    assert db.query(FormLink).count() == 1


def test_notification_failure_is_logged_as_warning(monkeypatch, caplog, components, customer):
    def broken_emit(self, message):
        raise RuntimeError("notification store down")

    monkeypatch.setattr(DatabaseNotificationEmitter, "emit", broken_emit)

    with caplog.at_level(logging.WARNING, logger="formlinks.services.collaborators"):
        issued = components.issuer.issue(customer.id, notify_customer=True)

    assert issued.form_link.status == FormLinkStatus.PENDING.value
    assert [
        record.levelno for record in caplog.records if record.message == "notification_emit_failed"
    ] == [logging.WARNING]
