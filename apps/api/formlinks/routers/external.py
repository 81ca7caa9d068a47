"""Server-to-server endpoints authenticated by API key."""

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from formlinks.core.config import settings
from formlinks.core.deps import get_verification_gateway
from formlinks.core.exceptions import REASON_TO_ERROR
from formlinks.core.rate_limit import limiter
from formlinks.schemas.form_links import (
    ApiEnvelope,
    ExternalVerificationData,
    ExternalVerificationRequest,
)
from formlinks.services.verification_service import ExternalVerificationGateway

router = APIRouter(prefix="/external", tags=["external"])


@router.post("/form-links/verify", response_model=ApiEnvelope[ExternalVerificationData])
@limiter.limit(f"{settings.RATE_LIMIT_EXTERNAL}/minute")
def verify_form_link(
    request: Request,
    body: ExternalVerificationRequest,
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    gateway: ExternalVerificationGateway = Depends(get_verification_gateway),
):
    result = gateway.verify(body.token, body.api_key or x_api_key)
    if not result.success:
        error_cls = REASON_TO_ERROR[result.error]
        envelope = ApiEnvelope[ExternalVerificationData](
            success=False,
            error=error_cls.reason,
            message=error_cls.default_message,
        )
        return JSONResponse(
            status_code=error_cls.status_code,
            content=envelope.model_dump(mode="json"),
        )
    return ApiEnvelope[ExternalVerificationData](
        success=True,
        data=ExternalVerificationData(**result.data),
    )
