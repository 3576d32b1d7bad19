"""
Token Wallet Module
Token-metered access to emoji generation

This module provides:
- Lazy account creation with a welcome bonus
- Atomic, engine-serialized token deductions
- Refund-on-failure around the image generation call
- Stripe Checkout purchases credited idempotently from webhooks
- An append-only transaction log the balance can be rebuilt from

Tables used:
- accounts: One row per user identifier (balance, total_used)
- token_transactions: Immutable audit log (purchase, usage, refund, bonus)
"""

__version__ = "1.0.0"
