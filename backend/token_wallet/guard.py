"""
Generation Guard - token gate around the image generation call

Enforces:
- One token deducted before the external call, none if the balance is empty
- At most one external call per request, no retries
- Automatic refund when the external call fails

State per request:
    IDLE -> DEDUCTED -> COMMITTED
                     -> REFUNDING -> REFUNDED | REFUND_FAILED

IMPORTANT: A failed refund is logged and recorded on the raised error, but the
caller always receives the original generation failure. Cancellation is not a
failure: an abandoned request keeps its deduction and issues no refund.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from utils.errors import ExternalServiceError, InsufficientTokens

from .config import ERROR_CODES, GENERATION_COST, REFUND_DESCRIPTION
from .tables import TransactionKind
from .wallet_service import WalletService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GenerationState(str, Enum):
    IDLE = "idle"
    DEDUCTED = "deducted"
    COMMITTED = "committed"
    REFUNDING = "refunding"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"


@dataclass
class RefundOutcome:
    """Result of the compensating credit, kept for observability."""
    refunded: bool
    balance: Optional[int] = None
    error: Optional[str] = None


@dataclass
class GenerationTicket:
    user_id: str
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: GenerationState = GenerationState.IDLE
    refund: Optional[RefundOutcome] = None

    def advance(self, state: GenerationState):
        logger.debug(f"Generation {self.request_id} for {self.user_id}: {self.state.value} -> {state.value}")
        self.state = state


@dataclass
class GuardedResult(Generic[T]):
    value: T
    tokens_remaining: int
    ticket: GenerationTicket


class GenerationFailed(ExternalServiceError):
    """The external call failed after a token was spent."""

    def __init__(self, message: str, ticket: GenerationTicket):
        super().__init__(message)
        self.ticket = ticket

    @property
    def refund(self) -> Optional[RefundOutcome]:
        return self.ticket.refund


class GenerationGuard:
    """
    Sequences deduct -> external call -> commit or refund.

    Usage:
        guard = GenerationGuard(wallet_service)
        result = await guard.run(user_email, lambda: generator.generate(prompt))
        result.value, result.tokens_remaining
    """

    def __init__(self, wallet_service: WalletService):
        self.wallet_service = wallet_service

    async def run(self, user_id: str, generate: Callable[[], Awaitable[T]]) -> GuardedResult[T]:
        ticket = GenerationTicket(user_id=user_id)

        if not await self.wallet_service.deduct(user_id):
            raise InsufficientTokens(ERROR_CODES["INSUFFICIENT_TOKENS"])
        ticket.advance(GenerationState.DEDUCTED)

        try:
            value = await generate()
        except Exception as e:
            logger.error(f"Generation {ticket.request_id} failed for {user_id}: {e}")
            await self._refund(ticket)
            raise GenerationFailed(str(e), ticket) from e

        ticket.advance(GenerationState.COMMITTED)
        account = await self.wallet_service.get_balance(user_id)
        return GuardedResult(value=value, tokens_remaining=account.balance, ticket=ticket)

    async def _refund(self, ticket: GenerationTicket):
        """Best-effort compensating credit. Never raises."""
        ticket.advance(GenerationState.REFUNDING)
        try:
            account = await self.wallet_service.credit(
                ticket.user_id,
                GENERATION_COST,
                REFUND_DESCRIPTION,
                kind=TransactionKind.REFUND,
            )
        except Exception as e:
            logger.exception(
                f"Refund failed for {ticket.user_id} (request {ticket.request_id}); "
                f"balance is short by {GENERATION_COST} token"
            )
            ticket.refund = RefundOutcome(refunded=False, error=str(e))
            ticket.advance(GenerationState.REFUND_FAILED)
            return

        ticket.refund = RefundOutcome(refunded=True, balance=account.balance)
        ticket.advance(GenerationState.REFUNDED)
        logger.info(f"Refunded {GENERATION_COST} token to {ticket.user_id} (request {ticket.request_id})")
