"""
Time and identifier collaborators injected into the services.

Tests replace both with deterministic versions through the FastAPI
dependency overrides in ``clinicflow.api.dependencies``.
"""

import itertools
import secrets
from datetime import datetime, timezone
from typing import Iterator, Optional, Protocol

from clinicflow.config.config import settings


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock, always timezone-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class IdGenerator:
    """
    Issues patient tokens and bill numbers.

    Each identifier combines the clock's epoch milliseconds, a per-generator
    monotonic sequence and a random suffix, so two identifiers from the same
    process never collide and identifiers from different processes collide
    only if both the millisecond and 24 random bits match.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        token_prefix: str = settings.PATIENT_TOKEN_PREFIX,
        bill_prefix: str = settings.BILL_NUMBER_PREFIX,
    ):
        self.clock = clock or SystemClock()
        self.token_prefix = token_prefix
        self.bill_prefix = bill_prefix
        self._sequence: Iterator[int] = itertools.count(1)

    def _next(self, prefix: str) -> str:
        millis = int(self.clock.now().timestamp() * 1000)
        seq = next(self._sequence)
        return f"{prefix}-{millis}-{seq:06d}-{secrets.token_hex(3)}"

    def new_patient_token(self) -> str:
        return self._next(self.token_prefix)

    def new_bill_number(self) -> str:
        return self._next(self.bill_prefix)

    def next_sequence(self) -> int:
        """Monotonic counter used to order records sharing a timestamp."""
        return next(self._sequence)
