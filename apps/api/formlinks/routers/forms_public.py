"""Public form endpoints for customers holding a form link."""

from typing import Any

from fastapi import APIRouter, Body, Depends, Request

from formlinks.core.config import settings
from formlinks.core.deps import get_link_validator, get_submission_recorder
from formlinks.core.rate_limit import limiter
from formlinks.schemas.form_links import (
    ApiEnvelope,
    CustomerFormInfo,
    PublicFormRead,
    SubmissionReceiptRead,
)
from formlinks.services.submission_service import SubmissionRecorder
from formlinks.services.token_service import LinkValidator
from formlinks.utils.datetimes import ensure_utc

router = APIRouter(prefix="/form", tags=["forms-public"])


@router.get("/{token}", response_model=ApiEnvelope[PublicFormRead])
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_READ}/minute")
def get_public_form(
    request: Request,
    token: str,
    validator: LinkValidator = Depends(get_link_validator),
):
    result = validator.require_valid(token)
    customer = result.customer
    return ApiEnvelope[PublicFormRead](
        success=True,
        data=PublicFormRead(
            form_link_id=result.form_link.id,
            status=result.form_link.status,
            expires_at=ensure_utc(result.form_link.expires_at),
            customer=CustomerFormInfo(
                name=customer.name,
                email=customer.email,
                phone=customer.phone,
                address=customer.address,
            ),
        ),
    )


@router.post("/{token}", response_model=ApiEnvelope[SubmissionReceiptRead])
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_SUBMIT}/minute")
def submit_public_form(
    request: Request,
    token: str,
    payload: dict[str, Any] = Body(...),
    recorder: SubmissionRecorder = Depends(get_submission_recorder),
):
    receipt = recorder.submit(token, payload)
    return ApiEnvelope[SubmissionReceiptRead](
        success=True,
        data=SubmissionReceiptRead(
            form_link_id=receipt.form_link_id,
            status=receipt.status,
            submitted_at=receipt.submitted_at,
        ),
        message="Thank you, your form has been submitted",
    )
