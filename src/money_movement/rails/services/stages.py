"""Preprocess and confirm stages.

Stateless request/response wrappers around the processor. Each stage
call sends exactly one request carrying the idempotency token it was
given, bounds it by a timeout, and normalizes any remote failure into
the error taxonomy. Sequencing and state belong to the orchestrator.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from money_movement.rails.errors import ErrorNormalizer, ValidationError
from money_movement.rails.providers.base import PaymentProcessor, PreprocessResult
from money_movement.rails.state_machine import Stage
from money_movement.rails.tokens import ControlFlowToken, IdempotencyToken
from money_movement.rails.types import (
    ConfirmationResult,
    TransactionIntent,
    TransactionStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RemoteStage:
    """Shared plumbing for a single remote stage call."""

    stage: Stage

    def __init__(
        self,
        processor: PaymentProcessor,
        *,
        normalizer: ErrorNormalizer | None = None,
        timeout_seconds: float | None = None,
    ):
        self.processor = processor
        self.normalizer = normalizer or ErrorNormalizer()
        self.timeout_seconds = timeout_seconds

    async def _call(self, call: Awaitable[T], idempotency_token: IdempotencyToken) -> T:
        """Await one processor call, normalizing remote failures.

        Cancellation and programming errors propagate untouched.
        """
        logger.info("%s request uuid=%s", self.stage.value, idempotency_token)
        try:
            if self.timeout_seconds is None:
                result = await call
            else:
                result = await asyncio.wait_for(call, self.timeout_seconds)
        except Exception as e:
            if not self.normalizer.is_remote_failure(e):
                raise
            error = self.normalizer.normalize(e, self.stage)
            logger.info(
                "%s failed uuid=%s kind=%s code=%s",
                self.stage.value,
                idempotency_token,
                error.kind.value,
                error.code,
            )
            raise error from e

        logger.info("%s succeeded uuid=%s", self.stage.value, idempotency_token)
        return result


class PreprocessStage(RemoteStage):
    """Submits an intent and returns the quote with its control-flow token."""

    stage = Stage.PREPROCESS

    async def preprocess(
        self,
        intent: TransactionIntent,
        idempotency_token: IdempotencyToken,
    ) -> PreprocessResult:
        errors = intent.validate()
        if errors:
            raise ValidationError(
                "; ".join(errors), code="INVALID_INTENT", stage=self.stage, errors=errors
            )
        return await self._call(
            self.processor.preprocess(intent, idempotency_token), idempotency_token
        )


class ConfirmStage(RemoteStage):
    """Executes a quoted transaction. The only irreversible call."""

    stage = Stage.CONFIRM

    async def confirm(
        self,
        token: ControlFlowToken,
        idempotency_token: IdempotencyToken,
    ) -> ConfirmationResult:
        return await self._call(
            self.processor.confirm(token, idempotency_token), idempotency_token
        )


class ReconcileStage(RemoteStage):
    """Queries the outcome of a confirm whose result never arrived."""

    stage = Stage.RECONCILE

    async def query(
        self,
        lookup_token: IdempotencyToken,
        idempotency_token: IdempotencyToken,
        token: ControlFlowToken | None = None,
    ) -> TransactionStatus:
        """Look up the confirm sent with lookup_token; the query carries its own token."""
        return await self._call(
            self.processor.get_transaction_status(lookup_token, idempotency_token, token),
            idempotency_token,
        )
