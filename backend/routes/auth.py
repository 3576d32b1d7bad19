"""
Authentication routes - email verification codes
"""
import logging

from fastapi import APIRouter, Depends

from models.schemas import SendCodeRequest, VerifyCodeRequest
from services.email_service import EmailService, get_email_service
from services.verification_codes import VerificationCodeStore, get_code_store
from utils.errors import ValidationError

logger = logging.getLogger(__name__)

auth_router = APIRouter(tags=["Authentication"])


@auth_router.post("/send-code")
async def send_code(
    body: SendCodeRequest,
    code_store: VerificationCodeStore = Depends(get_code_store),
    email_service: EmailService = Depends(get_email_service)
):
    """Issue a 6-digit code and email it"""
    if not body.email:
        raise ValidationError("Email address is required")

    code = code_store.issue(body.email)
    result = await email_service.send_verification_code(body.email, code, code_store.ttl_minutes)
    logger.info(f"Verification code issued for {body.email} (delivery={result['status']})")

    return {"success": True, "message": "Verification code sent successfully"}


@auth_router.post("/verify-code")
async def verify_code(body: VerifyCodeRequest, code_store: VerificationCodeStore = Depends(get_code_store)):
    """Check a code. Each code works once."""
    if not body.email or not body.code:
        raise ValidationError("Email address and code are required")

    code_store.verify(body.email, body.code)

    return {"success": True, "message": "Email verified successfully", "email": body.email}
