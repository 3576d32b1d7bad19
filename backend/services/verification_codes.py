"""
In-memory verification codes for email sign-in.

Codes are six digits, expire after ten minutes and can be used once.
Nothing here survives a restart.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from utils.errors import ValidationError

logger = logging.getLogger(__name__)

CODE_TTL_SECONDS = 10 * 60


@dataclass
class PendingCode:
    code: str
    expires_at: float


class VerificationCodeStore:
    def __init__(self, ttl_seconds: int = CODE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._codes: Dict[str, PendingCode] = {}

    @property
    def ttl_minutes(self) -> int:
        return max(1, self.ttl_seconds // 60)

    def issue(self, email: str) -> str:
        """Create a fresh code for email, replacing any pending one."""
        code = f"{secrets.randbelow(900000) + 100000}"
        self._codes[email] = PendingCode(code=code, expires_at=self._clock() + self.ttl_seconds)
        return code

    def verify(self, email: str, code: str) -> None:
        pending = self._codes.get(email)
        if pending is None:
            raise ValidationError("No verification code found for this email")

        if self._clock() > pending.expires_at:
            del self._codes[email]
            raise ValidationError("Verification code has expired")

        # compare_digest rejects non-ASCII str
        if not secrets.compare_digest(pending.code.encode("utf-8"), str(code).encode("utf-8")):
            raise ValidationError("Invalid verification code")

        del self._codes[email]

    def pending(self, email: str) -> Optional[PendingCode]:
        return self._codes.get(email)

    async def purge_expired(self) -> int:
        """Drop expired codes. Scheduled every minute."""
        now = self._clock()
        expired = [email for email, pending in self._codes.items() if now > pending.expires_at]
        for email in expired:
            self._codes.pop(email, None)
        if expired:
            logger.info(f"Purged {len(expired)} expired verification codes")
        return len(expired)


_code_store: Optional[VerificationCodeStore] = None


def get_code_store() -> VerificationCodeStore:
    global _code_store
    if _code_store is None:
        _code_store = VerificationCodeStore()
    return _code_store
