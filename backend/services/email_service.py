"""
Email Service using Resend for the Emoji Generator
Handles verification code emails
"""

import os
import asyncio
import logging
from typing import Optional
import resend

logger = logging.getLogger(__name__)

DEFAULT_SENDER = "Emoji Generator <onboarding@resend.dev>"

# Email Templates
EMAIL_TEMPLATES = {
    "verification_code": {
        "subject": "Your Verification Code",
        "enabled": True,
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #667eea;">🔐 Email Verification</h2>
            <p>Your verification code is:</p>
            <div style="background: #f8f9fa; border: 2px solid #667eea; border-radius: 8px; padding: 20px; text-align: center; margin: 20px 0;">
                <h1 style="font-size: 32px; margin: 0; color: #667eea; letter-spacing: 4px;">{{code}}</h1>
            </div>
            <p>This code will expire in {{ttl_minutes}} minutes.</p>
            <p>If you didn't request this code, please ignore this email.</p>
        </div>
        """
    },
}


class EmailService:
    """Email service using Resend"""

    def __init__(self, api_key: Optional[str] = None, sender_email: Optional[str] = None):
        self.api_key = api_key or os.environ.get("RESEND_API_KEY")
        self.sender_email = sender_email or os.environ.get("SENDER_EMAIL", DEFAULT_SENDER)

    def initialize(self) -> bool:
        """Configure the Resend client. False when no API key is set."""
        if self.api_key:
            resend.api_key = self.api_key
            return True
        return False

    def _replace_variables(self, template: str, variables: dict) -> str:
        """Replace template variables"""
        result = template
        for key, value in variables.items():
            result = result.replace(f"{{{{{key}}}}}", str(value))
        return result

    async def send_email(self, to_email: str, template_name: str, variables: dict) -> dict:
        """Send email using a template"""
        if not self.initialize():
            logger.warning("Email service not configured - skipping email")
            return {"status": "skipped", "reason": "Email service not configured"}

        template = EMAIL_TEMPLATES.get(template_name)
        if not template:
            return {"status": "error", "reason": f"Template '{template_name}' not found"}

        if not template.get("enabled", True):
            return {"status": "skipped", "reason": "Template disabled"}

        params = {
            "from": self.sender_email,
            "to": [to_email],
            "subject": self._replace_variables(template["subject"], variables),
            "html": self._replace_variables(template["html"], variables)
        }

        try:
            email_result = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.error(f"Failed to send email: {e}")
            return {"status": "error", "reason": str(e)}

        logger.info(f"Email sent to {to_email} ({template_name})")
        return {"status": "success", "email_id": email_result.get("id")}

    async def send_verification_code(self, email: str, code: str, ttl_minutes: int = 10) -> dict:
        """
        Send a verification code.

        Delivery problems never fail the request: the code is logged instead
        so it can still be read from the server output.
        """
        result = await self.send_email(
            email, "verification_code", {"code": code, "ttl_minutes": ttl_minutes}
        )
        if result["status"] != "success":
            logger.info(f"Verification code for {email}: {code}")
        return result


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
