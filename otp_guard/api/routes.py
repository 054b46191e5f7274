"""
OTP Routes
==========
HTTP adapter for requesting and verifying codes.

Both endpoints sit behind the per-address rate limiter. Errors are turned
into responses by ``otp_error_handler`` through the public outcome table,
so a missing session, an expired or locked one and a wrong code all
produce the same "Invalid or expired OTP" response.
"""

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import ErrorKind, OTPError, Outcome, STATUS_BY_OUTCOME, to_public
from ..rate_limit import AddressRateLimiter
from ..service import OTPService
from .schemas import OTPRequest, OTPRequestResponse, OTPVerifyRequest, OTPVerifyResponse

logger = structlog.get_logger(__name__)


def get_client_address(request: Request) -> str:
    return request.client.host if request.client else ""


async def otp_error_handler(request: Request, exc: OTPError) -> JSONResponse:
    """Render an OTP error as its public outcome."""
    public = to_public(exc)

    if exc.kind is ErrorKind.INFRASTRUCTURE:
        logger.error(
            "OTP request failed",
            path=request.url.path,
            operation=getattr(exc, "operation", None),
            error=str(exc),
            cause=repr(exc.__cause__) if exc.__cause__ else None,
        )
    else:
        logger.info("OTP request rejected", path=request.url.path, reason=exc.kind.value)

    headers = {}
    if "retry_after" in public.details:
        headers["Retry-After"] = str(public.details["retry_after"])

    return JSONResponse(status_code=public.status_code, content=public.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_OUTCOME[Outcome.INVALID_INPUT],
        content={"error": "Invalid request body", "code": Outcome.INVALID_INPUT.value},
    )


def create_auth_router(service: OTPService, limiter: AddressRateLimiter) -> APIRouter:
    """
    Create the ``/auth`` router.

    Args:
        service: OTP orchestrator
        limiter: Per-address rate limiter guarding both endpoints
    """

    async def rate_limit(request: Request) -> None:
        limiter.enforce(get_client_address(request))

    router = APIRouter(prefix="/auth", tags=["Auth"], dependencies=[Depends(rate_limit)])

    @router.post("/otp", response_model=OTPRequestResponse)
    async def request_otp(body: OTPRequest, request: Request) -> OTPRequestResponse:
        """Issue a code to the given email."""
        await service.issue(
            body.email,
            client_address=get_client_address(request) or None,
            user_agent=request.headers.get("user-agent", ""),
        )
        return OTPRequestResponse()

    @router.post("/verify", response_model=OTPVerifyResponse)
    async def verify_otp(body: OTPVerifyRequest) -> OTPVerifyResponse:
        """Verify a code; the session is consumed on success."""
        result = await service.verify(body.email, body.otp)
        return OTPVerifyResponse(email=result.email.value)

    return router
