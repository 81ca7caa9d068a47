"""Tests for server-to-server token verification."""

import pytest

from formlinks.core.config import settings
from formlinks.core.exceptions import (
    AlreadyFinalizedError,
    ExpiredError,
    NotFoundError,
    PermissionDeniedError,
)
from formlinks.core.security import obfuscate_customer_reference, verify_api_key
from formlinks.db.enums import ApprovalAction, AuditEventType
from formlinks.db.models import AuditLog
from formlinks.services import form_link_service


@pytest.mark.parametrize("api_key", [None, "", "wrong-key", "test-api-key "])
def test_bad_api_key_is_denied_without_lookup(monkeypatch, components, customer, api_key):
    token = components.issuer.issue(customer.id).form_link.token

    def fail_lookup(*args, **kwargs):
        raise AssertionError("link store must not be queried")

    monkeypatch.setattr(form_link_service, "get_form_link_by_token", fail_lookup)

    result = components.gateway.verify(token, api_key)

    assert result.success is False
    assert result.error == PermissionDeniedError.reason
    assert result.data is None


def test_valid_token_returns_deidentified_projection(components, customer):
    link = components.issuer.issue(customer.id, external_project_id="PRJ-42").form_link

    result = components.gateway.verify(link.token, "test-api-key")

    assert result.success is True
    data = result.data
    assert data["form_link_id"] == link.id
    assert data["customer_reference"] == obfuscate_customer_reference(customer.id)
    assert data["customer_name"] == customer.name
    assert data["status"] == "pending"
    assert data["metadata"] == {"external_project_id": "PRJ-42"}
    assert str(customer.id) not in repr(data)
    assert "customer_id" not in data


def test_reference_is_none_without_secret(monkeypatch, components, customer):
    monkeypatch.setattr(settings, "CUSTOMER_REFERENCE_SECRET", "")
    link = components.issuer.issue(customer.id).form_link

    result = components.gateway.verify(link.token, "test-api-key")

    assert result.success is True
    assert result.data["customer_reference"] is None
    assert str(customer.id) not in repr(result.data)


def test_invalid_tokens_return_their_reason(components, customer, approver, clock):
    assert components.gateway.verify("N" * 32, "test-api-key").error == NotFoundError.reason

    finalized = components.issuer.issue(customer.id).form_link
    components.recorder.submit(finalized.token, {"requirements": "x"})
    components.coordinator.decide(finalized.id, approver.id, ApprovalAction.APPROVE)
    assert components.gateway.verify(finalized.token, "test-api-key").error == AlreadyFinalizedError.reason

    expiring = components.issuer.issue(customer.id, expiration_hours=1).form_link
    clock.advance(hours=2)
    assert components.gateway.verify(expiring.token, "test-api-key").error == ExpiredError.reason


def test_every_call_is_audited_without_the_key(db, components, customer):
    link = components.issuer.issue(customer.id).form_link

    components.gateway.verify(link.token, "test-api-key")
    components.gateway.verify(link.token, "wrong-key")

    entries = db.query(AuditLog).filter(
        AuditLog.event_type == AuditEventType.FORM_LINK_VERIFIED.value
    ).all()
    assert sorted(e.details["outcome"] for e in entries) == ["PermissionDenied", "valid"]
    for entry in entries:
        assert "test-api-key" not in str(entry.details)
        assert "wrong-key" not in str(entry.details)


def test_verify_api_key_matches_any_configured_key():
    assert verify_api_key("b", ["a", "b"])
    assert not verify_api_key("c", ["a", "b"])
    assert not verify_api_key("a", [])
