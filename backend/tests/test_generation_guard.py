"""
Unit Tests for the Generation Guard
===================================

Tests:
1. Successful generation commits the deduction
2. Failed generation refunds the token
3. Refund failure is logged, the original failure still surfaces
4. Empty balance short-circuits before the external call
5. Cancellation keeps the deduction
"""

import asyncio
import logging
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from token_wallet.config import WELCOME_BONUS_TOKENS
from token_wallet.guard import GenerationFailed, GenerationGuard, GenerationState
from token_wallet.models import TokenAccount
from token_wallet.tables import TransactionKind
from utils.errors import ExternalServiceError, InsufficientTokens, StorageError, StorageErrorKind

EMAIL = "carol@example.com"


class TestGuardWithLedger:
    """Guard running against a real SQLite ledger."""

    @pytest.mark.asyncio
    async def test_success_commits_one_token(self, wallet):
        guard = GenerationGuard(wallet)
        generate = AsyncMock(return_value="emoji.png")

        result = await guard.run(EMAIL, generate)

        assert result.value == "emoji.png"
        assert result.tokens_remaining == WELCOME_BONUS_TOKENS - 1
        assert result.ticket.state is GenerationState.COMMITTED
        generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_refunds_and_keeps_usage(self, wallet):
        guard = GenerationGuard(wallet)
        generate = AsyncMock(side_effect=ExternalServiceError("model overloaded"))

        with pytest.raises(GenerationFailed) as exc_info:
            await guard.run(EMAIL, generate)

        failure = exc_info.value
        assert "model overloaded" in failure.message
        assert failure.ticket.state is GenerationState.REFUNDED
        assert failure.refund.refunded is True
        assert failure.refund.balance == WELCOME_BONUS_TOKENS
        generate.assert_awaited_once()

        account = await wallet.get_balance(EMAIL)
        assert account.balance == WELCOME_BONUS_TOKENS
        assert account.total_used == 1

        kinds = [e.kind for e in await wallet.get_ledger(EMAIL)]
        assert kinds[:2] == [TransactionKind.REFUND.value, TransactionKind.USAGE.value]
        assert (await wallet.verify_ledger(EMAIL)).consistent is True

    @pytest.mark.asyncio
    async def test_empty_balance_never_calls_generator(self, wallet):
        for _ in range(WELCOME_BONUS_TOKENS):
            await wallet.deduct(EMAIL)
        generate = AsyncMock()

        with pytest.raises(InsufficientTokens) as exc_info:
            await GenerationGuard(wallet).run(EMAIL, generate)

        assert exc_info.value.status_code == 402
        assert exc_info.value.to_dict()["tokensNeeded"] is True
        generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancellation_keeps_deduction(self, wallet):
        started = asyncio.Event()

        async def slow_generate():
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(GenerationGuard(wallet).run(EMAIL, slow_generate))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        account = await wallet.get_balance(EMAIL)
        assert account.balance == WELCOME_BONUS_TOKENS - 1
        kinds = [e.kind for e in await wallet.get_ledger(EMAIL)]
        assert TransactionKind.REFUND.value not in kinds


class TestGuardRefundFailure:
    """Guard with a mocked wallet whose refund credit fails."""

    @pytest.mark.asyncio
    async def test_refund_failure_is_logged_not_surfaced(self, caplog):
        wallet = AsyncMock()
        wallet.deduct.return_value = True
        wallet.credit.side_effect = StorageError("disk I/O error", kind=StorageErrorKind.UNAVAILABLE)
        generate = AsyncMock(side_effect=RuntimeError("gemini timeout"))

        with caplog.at_level(logging.ERROR, logger="token_wallet.guard"):
            with pytest.raises(GenerationFailed) as exc_info:
                await GenerationGuard(wallet).run(EMAIL, generate)

        failure = exc_info.value
        assert failure.message == "gemini timeout"
        assert failure.ticket.state is GenerationState.REFUND_FAILED
        assert failure.refund.refunded is False
        assert "disk I/O error" in failure.refund.error
        assert any("Refund failed" in record.getMessage() for record in caplog.records)

    @pytest.mark.asyncio
    async def test_success_reports_fresh_balance(self):
        wallet = AsyncMock()
        wallet.deduct.return_value = True
        wallet.get_balance.return_value = TokenAccount(user_id=EMAIL, balance=7, total_used=3)

        result = await GenerationGuard(wallet).run(EMAIL, AsyncMock(return_value={"filename": "x.png"}))

        assert result.tokens_remaining == 7
        wallet.credit.assert_not_awaited()
