"""
Token Wallet Data Models

Pydantic models for wallet operations and API payloads.
Rows read from the ledger tables are converted into these before they leave
a transaction, so callers never touch live ORM objects.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from .config import DEFAULT_TOKEN_PACKAGE


# ==================== ACCOUNT MODELS ====================

class TokenAccount(BaseModel):
    """Snapshot of a user's token account"""
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    balance: int
    total_used: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_new_user(self) -> bool:
        return self.total_used == 0

    def to_response(self) -> dict:
        return {
            "balance": self.balance,
            "totalUsed": self.total_used,
            "isNewUser": self.is_new_user,
        }


# ==================== LEDGER MODELS ====================

class LedgerEntry(BaseModel):
    """Immutable ledger entry for a balance change"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: str
    kind: str
    amount: int
    description: Optional[str] = None
    external_event_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_response(self) -> dict:
        return {
            "id": self.id,
            "type": self.kind,
            "amount": self.amount,
            "description": self.description,
            "externalEventId": self.external_event_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class LedgerAudit(BaseModel):
    """Cached balance compared with the balance rebuilt from the log"""
    user_id: str
    balance: int
    ledger_balance: int

    @property
    def consistent(self) -> bool:
        return self.balance == self.ledger_balance


# ==================== PURCHASE MODELS ====================

class PurchaseTokensRequest(BaseModel):
    """Request to start a Stripe Checkout purchase"""
    model_config = ConfigDict(populate_by_name=True)

    user_email: Optional[str] = Field(None, alias="userEmail")
    token_package: str = Field(DEFAULT_TOKEN_PACKAGE, alias="tokenPackage", description="Token package id: 25, 100, 250 or 500")


class CheckoutSession(BaseModel):
    """Hosted checkout session created with the payment provider"""
    checkout_url: str
    session_id: str

    def to_response(self) -> dict:
        return {"checkoutUrl": self.checkout_url, "sessionId": self.session_id}


# ==================== WEBHOOK MODELS ====================

class WebhookResult(BaseModel):
    """Outcome of processing one verified webhook event"""
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    status: str
    reason: Optional[str] = None
    balance: Optional[int] = None
    details: Optional[dict] = None
