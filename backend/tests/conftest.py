"""
Shared fixtures: a fresh SQLite ledger per test and an HTTP client
with the external collaborators replaced.
"""

import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="emoji-uploads-"))

from database import build_engine, build_session_factory, init_db
from services.gemini_service import GeneratedImage
from token_wallet.ledger_store import LedgerStore
from token_wallet.wallet_service import WalletService

TEST_EMAIL = "alice@example.com"
WEBHOOK_SECRET = "whsec_test_secret"


class FakeEmojiGenerator:
    """Stands in for Gemini. Set `error` to make the next calls fail."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.error = None
        self.calls = []

    async def generate(self, prompt, image_bytes=None, mime_type=None):
        self.calls.append({"prompt": prompt, "has_image": image_bytes is not None, "mime_type": mime_type})
        if self.error:
            raise self.error
        return GeneratedImage(data=b"\x89PNG\r\n\x1a\nfake", mime_type="image/png")


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine):
    return LedgerStore(build_session_factory(engine))


@pytest.fixture
def wallet(store):
    return WalletService(store)


@pytest.fixture
def generator():
    return FakeEmojiGenerator()


@pytest.fixture
def emoji_storage(tmp_path):
    from services.emoji_storage import EmojiStorage
    return EmojiStorage(tmp_path / "uploads")


@pytest.fixture
def code_store():
    from services.verification_codes import VerificationCodeStore
    return VerificationCodeStore()


@pytest.fixture
def email_service():
    service = AsyncMock()
    service.send_verification_code.return_value = {"status": "skipped", "reason": "Email service not configured"}
    return service


@pytest_asyncio.fixture
async def client(wallet, generator, emoji_storage, code_store, email_service):
    from server import app
    from routes.auth import get_code_store, get_email_service
    from routes.emoji import get_emoji_generator, get_emoji_storage
    from token_wallet.routes import get_wallet_service, get_webhook_handler
    from token_wallet.stripe_service import StripeWebhookHandler

    app.dependency_overrides[get_wallet_service] = lambda: wallet
    app.dependency_overrides[get_webhook_handler] = lambda: StripeWebhookHandler(wallet, webhook_secret=WEBHOOK_SECRET)
    app.dependency_overrides[get_emoji_generator] = lambda: generator
    app.dependency_overrides[get_emoji_storage] = lambda: emoji_storage
    app.dependency_overrides[get_code_store] = lambda: code_store
    app.dependency_overrides[get_email_service] = lambda: email_service

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
