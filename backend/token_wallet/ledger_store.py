"""
Ledger Store

Durable storage for token accounts and the transaction log.

CRITICAL: Every balance change and its audit row are written inside the same
database transaction. The store never reads a balance in one round trip and
writes it back in another.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, List, TypeVar

from sqlalchemy import func, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from utils.errors import StorageError, StorageErrorKind

from .config import WELCOME_BONUS_DESCRIPTION, WELCOME_BONUS_TOKENS
from .models import LedgerEntry, TokenAccount
from .tables import Account, TokenTransaction, TransactionKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


def translate_storage_error(exc: SQLAlchemyError) -> StorageError:
    """Map a SQLAlchemy exception onto the StorageError taxonomy."""
    if isinstance(exc, IntegrityError):
        kind = StorageErrorKind.CONSTRAINT
    elif isinstance(exc, _UNAVAILABLE_ERRORS):
        kind = StorageErrorKind.UNAVAILABLE
    else:
        kind = StorageErrorKind.UNKNOWN
    detail = getattr(exc, "orig", None) or exc
    return StorageError(str(detail), kind=kind)


class LedgerStore:
    """Transactional access to the accounts and token_transactions tables."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Open a session inside one database transaction.

        Commits when the block exits normally and rolls back on any exception,
        including cancellation. The session is always closed.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            raise translate_storage_error(e) from e

    async def with_transaction(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run fn(session) in one transaction and return its result."""
        async with self.transaction() as session:
            return await fn(session)

    async def get_account(self, user_id: str) -> TokenAccount:
        """
        Get existing account or create one lazily.

        A new account starts with the welcome bonus, and the matching bonus row
        is appended in the same transaction only by the caller whose insert won,
        so concurrent first touches grant the bonus once.
        """
        async with self.transaction() as session:
            account = await self.load_account(session, user_id)
            if account is not None:
                return account

            if await self._insert_account_if_missing(session, user_id):
                session.add(TokenTransaction(
                    account_id=user_id,
                    kind=TransactionKind.BONUS.value,
                    amount=WELCOME_BONUS_TOKENS,
                    description=WELCOME_BONUS_DESCRIPTION,
                ))
                await session.flush()
                logger.info(f"Created token account for {user_id} with {WELCOME_BONUS_TOKENS} bonus tokens")

            return await self.load_account(session, user_id)

    async def load_account(self, session: AsyncSession, user_id: str):
        """Read the account row inside an open transaction, or None."""
        row = await session.scalar(
            select(Account)
            .where(Account.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        if row is None:
            return None
        return TokenAccount.model_validate(row)

    async def _insert_account_if_missing(self, session: AsyncSession, user_id: str) -> bool:
        values = {"user_id": user_id, "balance": WELCOME_BONUS_TOKENS, "total_used": 0}
        dialect = session.get_bind().dialect.name

        if dialect in ("sqlite", "postgresql"):
            builder = sqlite_insert if dialect == "sqlite" else pg_insert
            stmt = builder(Account.__table__).values(**values).on_conflict_do_nothing(index_elements=["user_id"])
            result = await session.execute(stmt)
            return result.rowcount == 1

        # Other engines: savepoint so a lost race does not poison the transaction
        try:
            async with session.begin_nested():
                await session.execute(insert(Account.__table__).values(**values))
            return True
        except IntegrityError:
            return False

    async def list_transactions(self, user_id: str, limit: int) -> List[LedgerEntry]:
        """Newest-first transaction rows for one account."""
        async with self.transaction() as session:
            rows = await session.scalars(
                select(TokenTransaction)
                .where(TokenTransaction.account_id == user_id)
                .order_by(TokenTransaction.id.desc())
                .limit(limit)
            )
            return [LedgerEntry.model_validate(row) for row in rows]

    async def sum_transactions(self, session: AsyncSession, user_id: str) -> int:
        """Sum of every logged amount for one account, inside an open transaction."""
        total = await session.scalar(
            select(func.coalesce(func.sum(TokenTransaction.amount), 0))
            .where(TokenTransaction.account_id == user_id)
        )
        return int(total)
