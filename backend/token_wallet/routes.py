"""
Token Wallet API Routes

Endpoints:
- GET /api/user-tokens/{email} - Get balance and usage
- GET /api/token-history/{email} - Get transaction history
- GET /api/token-packages - Get purchasable token packages
- POST /api/purchase-tokens - Create a Stripe Checkout Session
- POST /api/stripe-webhook - Stripe webhook handler
"""

import logging

from fastapi import APIRouter, Depends, Query, Request

import database
from utils.errors import ValidationError

from .config import DEFAULT_LEDGER_LIMIT, ERROR_CODES, MAX_LEDGER_LIMIT, TOKEN_PACKAGES, CURRENCY
from .guard import GenerationGuard
from .ledger_store import LedgerStore
from .models import PurchaseTokensRequest
from .stripe_service import StripeCheckoutService, StripeWebhookHandler
from .wallet_service import WalletService

logger = logging.getLogger(__name__)

token_wallet_router = APIRouter(tags=["Token Wallet"])


# ==================== DEPENDENCIES ====================

def get_wallet_service() -> WalletService:
    return WalletService(LedgerStore(database.async_session_factory))


def get_generation_guard(wallet_service: WalletService = Depends(get_wallet_service)) -> GenerationGuard:
    return GenerationGuard(wallet_service)


def get_checkout_service() -> StripeCheckoutService:
    return StripeCheckoutService()


def get_webhook_handler(wallet_service: WalletService = Depends(get_wallet_service)) -> StripeWebhookHandler:
    return StripeWebhookHandler(wallet_service)


def _require_email(email: str) -> str:
    if not email or not email.strip():
        raise ValidationError("Email is required")
    return email


# ==================== BALANCE ENDPOINTS ====================

@token_wallet_router.get("/user-tokens/{email}")
async def get_user_tokens(email: str, wallet_service: WalletService = Depends(get_wallet_service)):
    """
    Get a user's token balance.

    The account is created with the welcome bonus on first request.
    """
    account = await wallet_service.get_balance(_require_email(email))
    return account.to_response()


@token_wallet_router.get("/token-history/{email}")
async def get_token_history(
    email: str,
    limit: int = Query(DEFAULT_LEDGER_LIMIT, ge=1, le=MAX_LEDGER_LIMIT),
    wallet_service: WalletService = Depends(get_wallet_service)
):
    """
    Get token transaction history, newest first.

    Shows all transactions: bonus, usage, refunds, purchases.
    """
    email = _require_email(email)
    audit = await wallet_service.verify_ledger(email)
    entries = await wallet_service.get_ledger(email, limit)

    return {
        "transactions": [entry.to_response() for entry in entries],
        "count": len(entries),
        "balance": audit.balance,
        "ledgerConsistent": audit.consistent,
    }


# ==================== TOKEN PACKAGE INFO ====================

@token_wallet_router.get("/token-packages")
async def get_token_packages():
    """Get available token packages with prices in cents."""
    return {
        "packages": [
            {"id": package_id, **package}
            for package_id, package in TOKEN_PACKAGES.items()
        ],
        "currency": CURRENCY,
    }


# ==================== PURCHASE ENDPOINTS ====================

@token_wallet_router.post("/purchase-tokens")
async def purchase_tokens(
    body: PurchaseTokensRequest,
    request: Request,
    checkout_service: StripeCheckoutService = Depends(get_checkout_service)
):
    """
    Create a Stripe Checkout Session for a token package.

    The user completes payment on Stripe, then the webhook credits tokens.
    """
    if not body.user_email:
        raise ValidationError(ERROR_CODES["EMAIL_REQUIRED"])

    origin = request.headers.get("origin") or str(request.base_url).rstrip("/")
    session = await checkout_service.create_checkout_session(body.user_email, body.token_package, origin)
    return session.to_response()


# ==================== STRIPE WEBHOOK ====================

@token_wallet_router.post("/stripe-webhook")
async def stripe_webhook(request: Request, handler: StripeWebhookHandler = Depends(get_webhook_handler)):
    """
    Handle Stripe webhook notifications.

    The signature is verified against the raw body before anything else.
    Events this service does not act on are acknowledged so Stripe stops sending them.
    """
    payload = await request.body()
    event = handler.verify_webhook(payload, request.headers.get("stripe-signature"))

    logger.info(f"Received Stripe webhook: {event.get('type')} (event_id={event.get('id')})")
    result = await handler.handle_event(event)
    logger.info(f"Stripe webhook {result.event_id} processed: {result.status}")

    return {"received": True}
