"""
Token Wallet Tables

SQLAlchemy ORM mapping for the ledger. Accounts hold the cached balance;
token_transactions is the append-only log the balance is rebuilt from.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class TransactionKind(str, Enum):
    PURCHASE = "purchase"
    USAGE = "usage"
    REFUND = "refund"
    BONUS = "bonus"


_KIND_VALUES = ", ".join(f"'{kind.value}'" for kind in TransactionKind)


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    balance: Mapped[int] = mapped_column(Integer, nullable=False)
    total_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class TokenTransaction(Base):
    __tablename__ = "token_transactions"
    __table_args__ = (
        CheckConstraint(f"kind IN ({_KIND_VALUES})", name="ck_token_transactions_kind"),
        UniqueConstraint("kind", "external_event_id", name="uq_token_transactions_kind_event"),
        Index("ix_token_transactions_account_id", "account_id", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(320), ForeignKey("accounts.user_id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_event_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
