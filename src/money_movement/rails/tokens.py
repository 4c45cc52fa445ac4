"""Idempotency and control-flow tokens.

Every remote call (eligibility, preprocess, confirm, status query) carries
exactly one idempotency token drawn from a provider immediately before the
call. Control-flow tokens are issued by the processor during preprocess and
handed back, unmodified, to confirm.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class IdempotencyToken:
    """Opaque identifier, unique per mutating call attempt."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ControlFlowToken:
    """Opaque processor-issued identifier binding a quote to one confirm.

    Only processors construct these; callers pass them through.
    """

    value: str

    def __str__(self) -> str:
        return self.value


class TokenProvider(Protocol):
    """Source of idempotency tokens."""

    def next(self) -> IdempotencyToken:
        """Issue a fresh token."""
        ...


class IdempotencyTokenProvider:
    """Issues random 128-bit (UUID4) idempotency tokens.

    Keeps no history; collision probability is negligible for the
    lifetime of a process.
    """

    def next(self) -> IdempotencyToken:
        return IdempotencyToken(str(uuid.uuid4()))
