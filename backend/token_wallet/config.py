"""
Token Wallet Configuration and Constants

Token packages, the welcome bonus, and user-facing messages are defined here.
Prices are in USD cents, as Stripe expects them.
"""

# ==================== ACCOUNT DEFAULTS ====================
WELCOME_BONUS_TOKENS = 25
WELCOME_BONUS_DESCRIPTION = "Welcome bonus - 25 free tokens"

# Every generation costs exactly one token
GENERATION_COST = 1
USAGE_DESCRIPTION = "Emoji generation"
REFUND_DESCRIPTION = "Refund - Generation failed"

# ==================== TOKEN PACKAGES (USD cents) ====================
# 25 tokens = $1.00
TOKEN_PACKAGES = {
    "25": {"tokens": 25, "price": 100, "name": "25 Tokens"},
    "100": {"tokens": 100, "price": 400, "name": "100 Tokens"},
    "250": {"tokens": 250, "price": 900, "name": "250 Tokens"},   # save $1
    "500": {"tokens": 500, "price": 1700, "name": "500 Tokens"},  # save $3
}
DEFAULT_TOKEN_PACKAGE = "25"
CURRENCY = "usd"
PRODUCT_NAME_SUFFIX = "Emoji Generator"

# ==================== LEDGER QUERIES ====================
DEFAULT_LEDGER_LIMIT = 50
MAX_LEDGER_LIMIT = 200

# ==================== ERROR MESSAGES ====================
ERROR_CODES = {
    "INSUFFICIENT_TOKENS": "Insufficient tokens. Please purchase more tokens to continue generating emojis.",
    "INVALID_PACKAGE": "Invalid token package",
    "EMAIL_REQUIRED": "User email is required",
    "PAYMENTS_NOT_CONFIGURED": "Payment processing not configured",
    "WEBHOOK_NOT_CONFIGURED": "Stripe webhook not configured",
    "INVALID_AMOUNT": "Credit amount must be a positive whole number of tokens",
}

# ==================== STRIPE ====================
# Webhook event type for a completed hosted checkout
STRIPE_CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"
# Seconds a signed webhook timestamp stays valid
STRIPE_SIGNATURE_TOLERANCE = 300
