"""Base protocol and types for payment processors.

All processor adapters must implement the PaymentProcessor protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from money_movement.rails.tokens import ControlFlowToken, IdempotencyToken
from money_movement.rails.types import (
    ConfirmationResult,
    EligibilityResult,
    PaymentRail,
    Quote,
    TransactionIntent,
    TransactionStatus,
)


@dataclass(frozen=True)
class PreprocessResult:
    """Result of preprocessing an intent: the quote and the token bound to it."""

    control_flow_token: ControlFlowToken
    quote: Quote


class PaymentProcessor(Protocol):
    """Protocol for remote payment processor adapters.

    The processor is a black box implementing the three-stage protocol
    plus a status query used to resolve ambiguous confirms. The
    orchestrator uses these adapters without knowing transport details.

    Methods either return a result or raise. Raised errors may be
    ProcessorRejection, transport exceptions, or already-normalized
    TransactionError subclasses; the stages normalize them.
    """

    processor_name: str

    async def check_eligibility(
        self,
        rail: PaymentRail,
        subtype: str,
        idempotency_token: IdempotencyToken,
    ) -> EligibilityResult:
        """Return eligible source accounts and destinations.

        Read-only; nothing is reserved.
        """
        ...

    async def preprocess(
        self,
        intent: TransactionIntent,
        idempotency_token: IdempotencyToken,
    ) -> PreprocessResult:
        """Quote an intent and issue a control-flow token for it.

        May place a provisional hold server-side. Issuing a new token
        supersedes any earlier outstanding one.
        """
        ...

    async def confirm(
        self,
        control_flow_token: ControlFlowToken,
        idempotency_token: IdempotencyToken,
    ) -> ConfirmationResult:
        """Execute the quoted transaction. Irreversible.

        The processor resolves the rail from the token itself.

        A replay with the same idempotency token returns the original
        result instead of executing twice.
        """
        ...

    async def get_transaction_status(
        self,
        lookup_token: IdempotencyToken,
        idempotency_token: IdempotencyToken,
        control_flow_token: ControlFlowToken | None = None,
    ) -> TransactionStatus:
        """Look up the outcome of a confirm attempt.

        lookup_token is the idempotency token the confirm was sent with;
        idempotency_token identifies this query itself.
        """
        ...
