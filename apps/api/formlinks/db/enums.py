"""Enums for the form-link workflow."""

from enum import Enum


class Role(str, Enum):
    """
    Staff roles.

    Every role except READ_ONLY may approve or reject form submissions.
    """
    ADMIN = "admin"
    MANAGER = "manager"
    SALES = "sales"
    READ_ONLY = "read_only"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class FormLinkStatus(str, Enum):
    """Stored workflow status of a form link."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def terminal(cls) -> frozenset["FormLinkStatus"]:
        return frozenset({cls.APPROVED, cls.REJECTED})


class FormLinkLifecycle(str, Enum):
    """Effective lifecycle state, including the soft-deleted variant."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELETED = "deleted"


class ApprovalAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class OfferStatus(str, Enum):
    PENDING = "pending"


class OfferSource(str, Enum):
    FORM = "form"


class ContactMethod(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    ANY = "any"


class AuditEventType(str, Enum):
    """
    Audit events for form-link state transitions.

    Details never contain tokens, API keys or raw submission content.
    """
    FORM_LINK_CREATED = "form_link_created"
    FORM_LINK_DELETED = "form_link_deleted"
    FORM_LINK_VERIFIED = "form_link_verified"
    FORM_SUBMISSION_RECEIVED = "form_submission_received"
    FORM_SUBMISSION_APPROVED = "form_submission_approved"
    FORM_SUBMISSION_REJECTED = "form_submission_rejected"
    OFFER_CREATED_FROM_FORM = "offer_created_from_form"


class NotificationType(str, Enum):
    FORM_LINK_ISSUED = "form_link_issued"
    FORM_SUBMISSION_RECEIVED = "form_submission_received"
    FORM_SUBMISSION_DECIDED = "form_submission_decided"
