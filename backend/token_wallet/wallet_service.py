"""
Token Wallet Service

Core wallet operations including:
- Lazy account creation (delegated to the ledger store)
- Balance queries
- Token deductions (atomic, concurrency-safe)
- Credits for purchases, refunds and bonuses (idempotent per external event)
- Ledger queries and balance reconstruction

CRITICAL: Deductions use a conditional UPDATE (balance > 0) so a negative
balance is impossible under any concurrency scenario. Ordering between
concurrent callers is decided by the database, never by in-process locks.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select, update

from utils.errors import StorageError, StorageErrorKind, ValidationError

from .config import (
    DEFAULT_LEDGER_LIMIT,
    ERROR_CODES,
    GENERATION_COST,
    MAX_LEDGER_LIMIT,
    USAGE_DESCRIPTION,
)
from .ledger_store import LedgerStore
from .models import LedgerAudit, LedgerEntry, TokenAccount
from .tables import Account, TokenTransaction, TransactionKind

logger = logging.getLogger(__name__)


class WalletService:
    """Service for managing token accounts. The only writer of Account.balance."""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def get_balance(self, user_id: str) -> TokenAccount:
        """Get the account, creating it with the welcome bonus on first touch."""
        return await self.store.get_account(user_id)

    async def deduct(self, user_id: str, description: str = USAGE_DESCRIPTION) -> bool:
        """
        Atomically deduct one token.

        Returns False, with no row changed and nothing logged, when the balance
        is already zero. Two concurrent calls at balance 1 produce exactly one
        True because the second UPDATE no longer matches balance > 0.
        """
        await self.store.get_account(user_id)

        async with self.store.transaction() as session:
            result = await session.execute(
                update(Account)
                .where(Account.user_id == user_id, Account.balance >= GENERATION_COST)
                .values(
                    balance=Account.balance - GENERATION_COST,
                    total_used=Account.total_used + GENERATION_COST,
                    updated_at=func.now(),
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                logger.info(f"Token deduction refused for {user_id}: balance exhausted")
                return False

            session.add(TokenTransaction(
                account_id=user_id,
                kind=TransactionKind.USAGE.value,
                amount=-GENERATION_COST,
                description=description,
            ))

        logger.info(f"Deducted {GENERATION_COST} token from {user_id}")
        return True

    async def credit(
        self,
        user_id: str,
        amount: int,
        description: str,
        external_event_id: Optional[str] = None,
        kind: Optional[TransactionKind] = None
    ) -> TokenAccount:
        """
        Credit tokens to an account (purchases, refunds, bonuses).

        Args:
            user_id: Account to credit
            amount: Positive number of tokens
            description: Free-text ledger description
            external_event_id: Payment provider event id; makes the call idempotent
            kind: refund (default) or bonus when no external event id is given

        Returns:
            The account after the credit, or unchanged if the event was already applied
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(ERROR_CODES["INVALID_AMOUNT"])

        if external_event_id:
            kind = TransactionKind.PURCHASE
        elif kind is None:
            kind = TransactionKind.REFUND

        await self.store.get_account(user_id)

        try:
            async with self.store.transaction() as session:
                if external_event_id:
                    already_applied = await session.scalar(
                        select(TokenTransaction.id).where(
                            TokenTransaction.kind == kind.value,
                            TokenTransaction.external_event_id == external_event_id,
                        )
                    )
                    if already_applied is not None:
                        logger.info(f"Skipping duplicate {kind.value} event {external_event_id} for {user_id}")
                        return await self.store.load_account(session, user_id)

                # Log row first: a racing duplicate fails here, before the balance moves
                session.add(TokenTransaction(
                    account_id=user_id,
                    kind=kind.value,
                    amount=amount,
                    description=description,
                    external_event_id=external_event_id,
                ))
                await session.flush()

                await session.execute(
                    update(Account)
                    .where(Account.user_id == user_id)
                    .values(balance=Account.balance + amount, updated_at=func.now())
                    .execution_options(synchronize_session=False)
                )
                account = await self.store.load_account(session, user_id)

        except StorageError as e:
            if e.kind is StorageErrorKind.CONSTRAINT and external_event_id:
                logger.info(f"Concurrent duplicate of event {external_event_id} for {user_id} ignored")
                return await self.store.get_account(user_id)
            raise

        logger.info(f"Credited {amount} tokens to {user_id} (kind={kind.value}, event={external_event_id})")
        return account

    async def get_ledger(self, user_id: str, limit: int = DEFAULT_LEDGER_LIMIT) -> List[LedgerEntry]:
        """Get recent ledger entries for an account, newest first."""
        limit = max(1, min(limit, MAX_LEDGER_LIMIT))
        return await self.store.list_transactions(user_id, limit)

    async def verify_ledger(self, user_id: str) -> LedgerAudit:
        """Compare the cached balance with the balance rebuilt from the log."""
        await self.store.get_account(user_id)

        # Both reads in one transaction so a concurrent write cannot split them
        async def read_both(session):
            account = await self.store.load_account(session, user_id)
            ledger_balance = await self.store.sum_transactions(session, user_id)
            return LedgerAudit(user_id=user_id, balance=account.balance, ledger_balance=ledger_balance)

        audit = await self.store.with_transaction(read_both)
        if not audit.consistent:
            logger.error(
                f"Ledger mismatch for {user_id}: balance={audit.balance} ledger={audit.ledger_balance}"
            )
        return audit
