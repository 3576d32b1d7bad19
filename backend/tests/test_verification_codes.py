"""
Tests for email verification codes
==================================

Tests:
1. Codes are six digits and single use
2. Expired codes are rejected and removed
3. /api/send-code and /api/verify-code round trip
4. Email delivery problems never fail the request
"""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import TEST_EMAIL
from services.email_service import EmailService
from services.verification_codes import VerificationCodeStore
from utils.errors import ValidationError


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestVerificationCodeStore:

    def test_code_format(self):
        code = VerificationCodeStore().issue(TEST_EMAIL)

        assert len(code) == 6
        assert code.isdigit()
        assert not code.startswith("0")

    def test_code_is_single_use(self):
        store = VerificationCodeStore()
        code = store.issue(TEST_EMAIL)

        store.verify(TEST_EMAIL, code)

        with pytest.raises(ValidationError, match="No verification code found for this email"):
            store.verify(TEST_EMAIL, code)

    def test_wrong_code_keeps_pending(self):
        store = VerificationCodeStore()
        code = store.issue(TEST_EMAIL)
        wrong = "000000" if code != "000000" else "111111"

        with pytest.raises(ValidationError, match="Invalid verification code"):
            store.verify(TEST_EMAIL, wrong)

        store.verify(TEST_EMAIL, code)

    def test_non_ascii_code_is_invalid(self):
        store = VerificationCodeStore()
        code = store.issue(TEST_EMAIL)

        with pytest.raises(ValidationError, match="Invalid verification code"):
            store.verify(TEST_EMAIL, "12345é")

        store.verify(TEST_EMAIL, code)

    def test_expired_code_removed(self):
        clock = FakeClock()
        store = VerificationCodeStore(ttl_seconds=600, clock=clock)
        code = store.issue(TEST_EMAIL)

        clock.now += 601

        with pytest.raises(ValidationError, match="Verification code has expired"):
            store.verify(TEST_EMAIL, code)
        assert store.pending(TEST_EMAIL) is None

    def test_reissue_replaces_code(self):
        store = VerificationCodeStore()
        store.issue(TEST_EMAIL)
        latest = store.issue(TEST_EMAIL)

        assert store.pending(TEST_EMAIL).code == latest

    @pytest.mark.asyncio
    async def test_purge_expired(self):
        clock = FakeClock()
        store = VerificationCodeStore(ttl_seconds=60, clock=clock)
        store.issue("old@example.com")
        clock.now += 30
        store.issue("new@example.com")
        clock.now += 45

        purged = await store.purge_expired()

        assert purged == 1
        assert store.pending("old@example.com") is None
        assert store.pending("new@example.com") is not None


class TestAuthRoutes:

    @pytest.mark.asyncio
    async def test_send_and_verify(self, client, email_service):
        response = await client.post("/api/send-code", json={"email": TEST_EMAIL})

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Verification code sent successfully"}
        email_service.send_verification_code.assert_awaited_once()
        sent_email, code, _ = email_service.send_verification_code.call_args.args
        assert sent_email == TEST_EMAIL

        verified = await client.post("/api/verify-code", json={"email": TEST_EMAIL, "code": code})
        assert verified.status_code == 200
        assert verified.json() == {"success": True, "message": "Email verified successfully", "email": TEST_EMAIL}

        replay = await client.post("/api/verify-code", json={"email": TEST_EMAIL, "code": code})
        assert replay.status_code == 400
        assert replay.json() == {"error": "No verification code found for this email"}

    @pytest.mark.asyncio
    async def test_non_ascii_code_is_400(self, client):
        await client.post("/api/send-code", json={"email": TEST_EMAIL})

        response = await client.post("/api/verify-code", json={"email": TEST_EMAIL, "code": "12345é"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid verification code"}

    @pytest.mark.asyncio
    async def test_send_requires_email(self, client):
        response = await client.post("/api/send-code", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Email address is required"}

    @pytest.mark.asyncio
    async def test_verify_requires_both_fields(self, client):
        response = await client.post("/api/verify-code", json={"email": TEST_EMAIL})

        assert response.status_code == 400
        assert response.json() == {"error": "Email address and code are required"}

    @pytest.mark.asyncio
    async def test_malformed_body_is_400(self, client):
        response = await client.post(
            "/api/send-code", content="not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert "error" in response.json()


class TestEmailService:

    @pytest.mark.asyncio
    async def test_unconfigured_service_skips(self, monkeypatch):
        monkeypatch.delenv("RESEND_API_KEY", raising=False)

        result = await EmailService().send_verification_code(TEST_EMAIL, "123456")

        assert result["status"] == "skipped"

    @pytest.mark.asyncio
    async def test_send_failure_reported(self):
        with patch("services.email_service.resend.Emails.send", side_effect=RuntimeError("rate limited")):
            result = await EmailService(api_key="re_test").send_verification_code(TEST_EMAIL, "123456")

        assert result == {"status": "error", "reason": "rate limited"}

    @pytest.mark.asyncio
    async def test_sends_code_in_template(self):
        with patch("services.email_service.resend.Emails.send", return_value={"id": "email_1"}) as send:
            result = await EmailService(api_key="re_test", sender_email="Emoji <noreply@test.dev>") \
                .send_verification_code(TEST_EMAIL, "654321")

        assert result == {"status": "success", "email_id": "email_1"}
        params = send.call_args.args[0]
        assert params["to"] == [TEST_EMAIL]
        assert params["from"] == "Emoji <noreply@test.dev>"
        assert params["subject"] == "Your Verification Code"
        assert "654321" in params["html"]
        assert "10 minutes" in params["html"]
