"""FastAPI dependencies: database session and workflow components."""

from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from formlinks.db.session import SessionLocal
from formlinks.services.approval_service import ApprovalCoordinator
from formlinks.services.collaborators import (
    CustomerConsentChecker,
    DatabaseAuditSink,
    DatabaseCustomerDirectory,
    DatabaseNotificationEmitter,
    RolePermissionChecker,
    SettingsApiKeyAllowList,
)
from formlinks.services.offer_service import OfferSynthesizer
from formlinks.services.submission_service import SubmissionRecorder
from formlinks.services.token_service import LinkValidator, TokenIssuer
from formlinks.services.verification_service import ExternalVerificationGateway
from formlinks.utils.datetimes import Clock, utc_now


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_clock() -> Clock:
    """Overridden in tests to move time forward."""
    return utc_now


def get_token_issuer(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> TokenIssuer:
    return TokenIssuer(
        db,
        customers=DatabaseCustomerDirectory(db),
        audit=DatabaseAuditSink(db),
        notifier=DatabaseNotificationEmitter(db),
        consent=CustomerConsentChecker(db),
        clock=clock,
    )


def get_link_validator(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> LinkValidator:
    return LinkValidator(db, customers=DatabaseCustomerDirectory(db), clock=clock)


def get_verification_gateway(
    db: Session = Depends(get_db),
    validator: LinkValidator = Depends(get_link_validator),
) -> ExternalVerificationGateway:
    return ExternalVerificationGateway(
        db,
        validator=validator,
        api_keys=SettingsApiKeyAllowList(),
        audit=DatabaseAuditSink(db),
    )


def get_submission_recorder(
    db: Session = Depends(get_db),
    validator: LinkValidator = Depends(get_link_validator),
    clock: Clock = Depends(get_clock),
) -> SubmissionRecorder:
    return SubmissionRecorder(
        db,
        validator=validator,
        audit=DatabaseAuditSink(db),
        notifier=DatabaseNotificationEmitter(db),
        permissions=RolePermissionChecker(db),
        clock=clock,
    )


def get_approval_coordinator(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> ApprovalCoordinator:
    audit = DatabaseAuditSink(db)
    return ApprovalCoordinator(
        db,
        permissions=RolePermissionChecker(db),
        synthesizer=OfferSynthesizer(
            db, customers=DatabaseCustomerDirectory(db), audit=audit, clock=clock
        ),
        audit=audit,
        notifier=DatabaseNotificationEmitter(db),
        clock=clock,
    )
