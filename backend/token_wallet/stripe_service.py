"""
Stripe Service for Token Package Purchases

Creates hosted Checkout Sessions and turns verified
"checkout.session.completed" webhooks into idempotent credits.

Required Environment Variables:
- STRIPE_SECRET_KEY (checkout creation)
- STRIPE_WEBHOOK_SECRET (webhook signature verification)
"""

import os
import asyncio
import logging
from typing import Any, Dict, Optional

import stripe

from utils.errors import AuthError, ExternalServiceError, ValidationError

from .config import (
    CURRENCY,
    ERROR_CODES,
    PRODUCT_NAME_SUFFIX,
    STRIPE_CHECKOUT_COMPLETED_EVENT,
    STRIPE_SIGNATURE_TOLERANCE,
    TOKEN_PACKAGES,
)
from .models import CheckoutSession, WebhookResult
from .wallet_service import WalletService

logger = logging.getLogger(__name__)


class StripeCheckoutService:
    """Stripe Checkout for one-time token package purchases."""

    @property
    def secret_key(self) -> str:
        return os.environ.get("STRIPE_SECRET_KEY", "")

    async def create_checkout_session(
        self,
        user_email: Optional[str],
        package_id: str,
        origin: str
    ) -> CheckoutSession:
        """
        Create a Stripe Checkout Session for a token package.

        Args:
            user_email: Account to credit once payment completes
            package_id: Token package id (25/100/250/500)
            origin: Site origin for the success and cancel redirects

        Returns:
            CheckoutSession with the hosted checkout URL
        """
        if not user_email:
            raise ValidationError(ERROR_CODES["EMAIL_REQUIRED"])

        if not self.secret_key:
            raise ExternalServiceError(ERROR_CODES["PAYMENTS_NOT_CONFIGURED"])

        package = TOKEN_PACKAGES.get(package_id)
        if not package:
            raise ValidationError(ERROR_CODES["INVALID_PACKAGE"])

        params = {
            "api_key": self.secret_key,
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": CURRENCY,
                        "product_data": {
                            "name": f"{package['name']} - {PRODUCT_NAME_SUFFIX}",
                            "description": f"Generate {package['tokens']} custom emojis with AI",
                        },
                        "unit_amount": package["price"],
                    },
                    "quantity": 1,
                }
            ],
            "mode": "payment",
            "success_url": f"{origin}/?purchase=success&session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{origin}/?purchase=cancelled",
            "client_reference_id": user_email,
            "metadata": {
                "userEmail": user_email,
                "tokens": str(package["tokens"]),
                "package": package_id,
            },
        }

        try:
            session = await asyncio.to_thread(stripe.checkout.Session.create, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout creation failed for {user_email}: {e}")
            raise ExternalServiceError(f"Failed to create payment session: {e}")

        logger.info(f"Created checkout session {session.id} for {user_email} (package={package_id})")
        return CheckoutSession(checkout_url=session.url, session_id=session.id)


class StripeWebhookHandler:
    """Handle Stripe webhook events"""

    def __init__(self, wallet_service: WalletService, webhook_secret: Optional[str] = None):
        self.wallet_service = wallet_service
        self.webhook_secret = webhook_secret or os.environ.get("STRIPE_WEBHOOK_SECRET")

    def verify_webhook(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """Verify the signature and parse the payload. Runs before any state change."""
        if not self.webhook_secret:
            raise ExternalServiceError(ERROR_CODES["WEBHOOK_NOT_CONFIGURED"])

        if not sig_header:
            raise AuthError("Webhook Error: missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(
                payload, sig_header, self.webhook_secret, tolerance=STRIPE_SIGNATURE_TOLERANCE
            )
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise AuthError("Webhook Error: invalid payload")
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise AuthError(f"Webhook Error: {e}")

        return event.to_dict()

    async def handle_event(self, event: Dict[str, Any]) -> WebhookResult:
        """Route event to appropriate handler"""
        event_type = event.get("type")
        event_id = event.get("id")
        data = (event.get("data") or {}).get("object") or {}

        handlers = {
            STRIPE_CHECKOUT_COMPLETED_EVENT: self._handle_checkout_completed,
        }

        handler = handlers.get(event_type)
        if handler:
            return await handler(event_id, data)

        logger.info(f"Unhandled event type {event_type}")
        return WebhookResult(event_id=event_id, event_type=event_type, status="ignored")

    async def _handle_checkout_completed(self, event_id: Optional[str], session: Dict[str, Any]) -> WebhookResult:
        """Credit the purchased tokens once per event id."""
        metadata = session.get("metadata") or {}
        user_email = metadata.get("userEmail")
        package_id = metadata.get("package")

        try:
            tokens = int(metadata.get("tokens") or 0)
        except (TypeError, ValueError):
            tokens = 0

        if not event_id or not user_email or tokens <= 0:
            logger.warning(f"Checkout {session.get('id')} completed without usable metadata: {metadata}")
            return WebhookResult(
                event_id=event_id,
                event_type=STRIPE_CHECKOUT_COMPLETED_EVENT,
                status="skipped",
                reason="missing metadata",
            )

        account = await self.wallet_service.credit(
            user_email,
            tokens,
            f"Stripe purchase - {package_id} package",
            external_event_id=event_id,
        )
        logger.info(f"Applied {tokens} purchased tokens for {user_email} (event {event_id})")

        return WebhookResult(
            event_id=event_id,
            event_type=STRIPE_CHECKOUT_COMPLETED_EVENT,
            status="credited",
            balance=account.balance,
            details={"checkout_session_id": session.get("id"), "package": package_id},
        )
