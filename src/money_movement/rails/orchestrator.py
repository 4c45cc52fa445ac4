"""Transaction Orchestrator - three-stage money movement.

Sequences one transaction run through:
1. Eligibility (which accounts and payees may transact on a rail)
2. Preprocess (quote, issuing a single-use control-flow token)
3. Confirm (execute the quote; the only irreversible step)

The orchestrator owns all state. The gate and stages it drives are
stateless. One instance serves one run; it is not shared between
unrelated transactions.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, TypeVar
from uuid import UUID, uuid4

from money_movement.rails.config import OrchestratorConfig
from money_movement.rails.errors import (
    AmbiguousOutcomeError,
    ConcurrentOperationInProgress,
    ErrorNormalizer,
    IneligibleParty,
    InsufficientFunds,
    RemoteUnavailable,
    TokenAlreadyUsed,
    TokenExpired,
    TransactionError,
    ValidationError,
)
from money_movement.rails.events import (
    DomainEvent,
    EligibilityEstablished,
    EventEmitter,
    EventMetadata,
    OutcomeAmbiguous,
    OutcomeReconciled,
    QuoteIssued,
    QuoteSuperseded,
    StateChanged,
    TransactionConfirmed,
    TransactionFailed,
)
from money_movement.rails.providers.base import PaymentProcessor
from money_movement.rails.services import (
    ConfirmStage,
    EligibilityGate,
    PreprocessStage,
    ReconcileStage,
)
from money_movement.rails.state_machine import (
    InvalidTransitionError,
    Stage,
    TransactionState,
    TransactionStateMachine,
)
from money_movement.rails.tokens import (
    ControlFlowToken,
    IdempotencyToken,
    IdempotencyTokenProvider,
    TokenProvider,
)
from money_movement.rails.types import (
    ConfirmationResult,
    EligibilityResult,
    PaymentRail,
    Quote,
    TransactionIntent,
    TransactionStatusCode,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Business rejections from preprocess that leave the run correctable
_CORRECTABLE = (IneligibleParty, InsufficientFunds, ValidationError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FailureRecord:
    """Why a run reached FAILED."""

    stage: Stage
    error: TransactionError

    @property
    def reason(self) -> str:
        return self.error.message

    def to_dict(self) -> dict[str, Any]:
        return {"stage": self.stage.value, **self.error.to_dict()}


class TransactionOrchestrator:
    """State machine driving one transaction run.

    Usage:
        orchestrator = TransactionOrchestrator(processor)
        await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        quote = await orchestrator.preprocess(intent)
        confirmation = await orchestrator.confirm()

    Every operation either returns its result or raises a TransactionError
    (or InvalidTransitionError for misuse). The current state always
    reflects the outcome, so callers can branch on `state` afterwards.
    """

    def __init__(
        self,
        processor: PaymentProcessor,
        *,
        config: OrchestratorConfig | None = None,
        token_provider: TokenProvider | None = None,
        normalizer: ErrorNormalizer | None = None,
        emitter: EventEmitter | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        run_id: UUID | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            processor: Remote payment processor adapter.
            config: Run configuration. Defaults to OrchestratorConfig().
            token_provider: Source of idempotency tokens.
            normalizer: Maps remote failures onto the error taxonomy.
            emitter: Receives domain events for this run.
            clock: Returns the current aware datetime (quote expiry).
            sleep: Awaited between retry attempts.
            run_id: Identifier correlating this run's events.
        """
        self.processor = processor
        self.config = config or OrchestratorConfig()
        self.tokens = token_provider or IdempotencyTokenProvider()
        self.emitter = emitter or EventEmitter()
        self.run_id = run_id or uuid4()
        self._clock = clock or _utcnow
        self._sleep = sleep

        normalizer = normalizer or ErrorNormalizer()
        stage_args: dict[str, Any] = {
            "normalizer": normalizer,
            "timeout_seconds": self.config.request_timeout_seconds,
        }
        self._gate = EligibilityGate(processor, **stage_args)
        self._preprocess_stage = PreprocessStage(processor, **stage_args)
        self._confirm_stage = ConfirmStage(processor, **stage_args)
        self._reconcile_stage = ReconcileStage(processor, **stage_args)

        self._state = TransactionState.IDLE
        self._in_flight = False
        self._superseded: set[ControlFlowToken] = set()
        self._last_event_id: UUID | None = None
        self._clear_run()

    def _clear_run(self) -> None:
        self._eligibility: EligibilityResult | None = None
        self._intent: TransactionIntent | None = None
        self._quote: Quote | None = None
        self._control_flow_token: ControlFlowToken | None = None
        self._quote_expires_at: datetime | None = None
        self._confirm_idempotency_token: IdempotencyToken | None = None
        self._confirmation: ConfirmationResult | None = None
        self._failure: FailureRecord | None = None
        self._ambiguity: AmbiguousOutcomeError | None = None

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def eligibility(self) -> EligibilityResult | None:
        return self._eligibility

    @property
    def intent(self) -> TransactionIntent | None:
        return self._intent

    @property
    def quote(self) -> Quote | None:
        return self._quote

    @property
    def control_flow_token(self) -> ControlFlowToken | None:
        return self._control_flow_token

    @property
    def quote_expires_at(self) -> datetime | None:
        return self._quote_expires_at

    @property
    def confirmation(self) -> ConfirmationResult | None:
        return self._confirmation

    @property
    def failure(self) -> FailureRecord | None:
        return self._failure

    @property
    def ambiguity(self) -> AmbiguousOutcomeError | None:
        return self._ambiguity

    @property
    def superseded_tokens(self) -> frozenset[ControlFlowToken]:
        return frozenset(self._superseded)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def is_quote_fresh(self) -> bool:
        """Whether the stored quote may still be confirmed."""
        return (
            self._state == TransactionState.QUOTED
            and self._quote_expires_at is not None
            and self._clock() < self._quote_expires_at
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def check_eligibility(
        self, rail: PaymentRail | str, subtype: str
    ) -> EligibilityResult:
        """Start the run: query eligible source accounts and payees.

        Raises:
            ValidationError: unknown rail or subtype (no request sent)
            InvalidTransitionError: run already started
            TransactionError: remote failure; the run is FAILED
        """
        self._check_not_in_flight()
        rail = self._gate.validate_rail(rail, subtype)
        TransactionStateMachine.validate_transition(
            self._state, TransactionState.CHECKING_ELIGIBILITY
        )

        self._transition(TransactionState.CHECKING_ELIGIBILITY)
        self._in_flight = True
        try:
            result = await self._call_with_retries(
                Stage.ELIGIBILITY,
                lambda token: self._gate.check_eligibility(rail, subtype, token),
            )
        except asyncio.CancelledError:
            self._fail(
                Stage.ELIGIBILITY,
                RemoteUnavailable(
                    "Eligibility check was cancelled", code="CANCELLED", stage=Stage.ELIGIBILITY
                ),
            )
            raise
        except TransactionError as e:
            self._fail(Stage.ELIGIBILITY, e)
            raise
        except Exception:
            self._fail_unexpected(Stage.ELIGIBILITY)
            raise
        finally:
            self._in_flight = False

        if not result.usable_source_accounts:
            error = IneligibleParty(
                "No source account can fund a payment on this rail",
                code="NO_USABLE_SOURCE_ACCOUNT",
                stage=Stage.ELIGIBILITY,
            )
            self._fail(Stage.ELIGIBILITY, error)
            raise error

        self._eligibility = result
        self._transition(TransactionState.ELIGIBLE)
        self._emit(
            EligibilityEstablished,
            rail=rail.value,
            subtype=subtype,
            source_account_count=len(result.source_accounts),
            destination_count=len(result.destinations),
        )
        return result

    async def preprocess(self, intent: TransactionIntent) -> Quote:
        """Quote an intent, or re-quote an edited one.

        A re-quote discards the outstanding control-flow token before the
        new request is sent; that token is never confirmed.

        Raises:
            ConcurrentOperationInProgress: another call of this run is in flight
            InvalidTransitionError: no eligibility established
            ValidationError: malformed intent (no request sent)
            IneligibleParty: party missing from eligibility hints (no request sent)
            TransactionError: remote failure. Business rejections return the
                run to ELIGIBLE; anything else fails it.
        """
        self._check_not_in_flight()
        if not TransactionStateMachine.can_preprocess(self._state):
            raise InvalidTransitionError(
                self._state.value,
                TransactionState.PREPROCESSING.value,
                "a quote requires established eligibility",
            )

        errors = intent.validate()
        if errors:
            raise ValidationError(
                "; ".join(errors), code="INVALID_INTENT", stage=Stage.PREPROCESS, errors=errors
            )
        self._gate.check_intent(
            intent,
            self._eligibility,
            check_parties=self.config.enforce_eligibility_hints,
        )

        requote = TransactionStateMachine.is_requote(self._state, TransactionState.PREPROCESSING)
        self._transition(TransactionState.PREPROCESSING, "requote" if requote else None)
        if requote:
            self._supersede("requote")
        self._intent = intent

        self._in_flight = True
        try:
            result = await self._call_with_retries(
                Stage.PREPROCESS,
                lambda token: self._preprocess_stage.preprocess(intent, token),
            )
        except asyncio.CancelledError:
            logger.info("Preprocess cancelled; run %s back to eligible", self.run_id)
            self._transition(TransactionState.ELIGIBLE, "cancelled")
            raise
        except _CORRECTABLE as e:
            self._transition(TransactionState.ELIGIBLE, e.kind.value)
            raise
        except TransactionError as e:
            self._fail(Stage.PREPROCESS, e)
            raise
        except Exception:
            self._fail_unexpected(Stage.PREPROCESS)
            raise
        finally:
            self._in_flight = False

        issued_at = self._clock()
        expires_at = issued_at + timedelta(seconds=self.config.quote_ttl_seconds)
        if result.quote.expires_at is not None:
            expires_at = min(expires_at, _aware(result.quote.expires_at))

        self._control_flow_token = result.control_flow_token
        self._quote = result.quote
        self._quote_expires_at = expires_at
        self._transition(TransactionState.QUOTED)
        self._emit(
            QuoteIssued,
            control_flow_token=result.control_flow_token.value,
            rail=intent.rail.value,
            debit_currency=result.quote.debit.currency,
            credit_currency=result.quote.credit.currency,
            has_fee=result.quote.fee is not None,
            fx_rate=result.quote.fx_rate,
            expires_at=expires_at,
        )
        return result.quote

    async def confirm(self) -> ConfirmationResult:
        """Execute the stored quote.

        Never retried. If the outcome cannot be determined the run moves
        to AMBIGUOUS_OUTCOME and only reconcile() may follow.

        Raises:
            ConcurrentOperationInProgress: another call of this run is in flight
            TokenAlreadyUsed: the run already confirmed (no request sent)
            InvalidTransitionError: no quote to confirm (no request sent)
            TokenExpired: quote stale locally (no request sent) or rejected
                as expired by the processor; the run is back to ELIGIBLE
            AmbiguousOutcomeError: the outcome is unknown
            TransactionError: any other failure; the run is FAILED
        """
        self._check_not_in_flight()
        if self._state == TransactionState.CONFIRMED:
            raise TokenAlreadyUsed(
                "This transaction was already confirmed",
                code="CONTROL_FLOW_ALREADY_USED",
                stage=Stage.CONFIRM,
            )
        if self._state != TransactionState.QUOTED:
            raise InvalidTransitionError(
                self._state.value,
                TransactionState.CONFIRMING.value,
                "confirm requires a quote",
            )

        if not self.is_quote_fresh():
            logger.info("Quote %s expired before confirm", self._control_flow_token)
            self._supersede("expired")
            self._transition(TransactionState.ELIGIBLE, "quote expired")
            raise TokenExpired(
                "Quote expired; preprocess again", code="QUOTE_EXPIRED", stage=Stage.CONFIRM
            )

        token = self._control_flow_token
        self._transition(TransactionState.CONFIRMING)
        idempotency_token = self.tokens.next()
        self._confirm_idempotency_token = idempotency_token

        self._in_flight = True
        try:
            confirmation = await self._confirm_stage.confirm(token, idempotency_token)
        except asyncio.CancelledError:
            self._enter_ambiguous(
                AmbiguousOutcomeError(
                    "Confirm was cancelled after it may have been sent",
                    code="CANCELLED",
                )
            )
            raise
        except TokenExpired:
            self._supersede("expired")
            self._transition(TransactionState.ELIGIBLE, "token expired")
            raise
        except RemoteUnavailable as e:
            error = AmbiguousOutcomeError(
                f"Confirm outcome unknown: {e.message}", code=e.code, cause=e
            )
            self._enter_ambiguous(error)
            raise error from e
        except TransactionError as e:
            self._fail(Stage.CONFIRM, e)
            raise
        except Exception as e:
            self._enter_ambiguous(
                AmbiguousOutcomeError(f"Confirm outcome unknown: {e!r}", code="UNEXPECTED_ERROR")
            )
            raise
        finally:
            self._in_flight = False

        self._confirmation = confirmation
        self._transition(TransactionState.CONFIRMED)
        self._emit(
            TransactionConfirmed,
            control_flow_token=token.value,
            transaction_reference=confirmation.transaction_reference,
        )
        return confirmation

    async def reconcile(self) -> ConfirmationResult | None:
        """Resolve an ambiguous confirm by querying its outcome.

        Returns:
            The recovered ConfirmationResult (state CONFIRMED), or None when
            the transaction did not execute (state FAILED) or the processor
            still reports it pending (state stays AMBIGUOUS_OUTCOME).

        Raises:
            InvalidTransitionError: nothing to reconcile
            TransactionError: the query failed; state stays AMBIGUOUS_OUTCOME
        """
        self._check_not_in_flight()
        if self._state != TransactionState.AMBIGUOUS_OUTCOME:
            raise InvalidTransitionError(
                self._state.value,
                TransactionState.CONFIRMED.value,
                "reconcile is only allowed after an ambiguous confirm",
            )

        confirm_token = self._confirm_idempotency_token
        self._in_flight = True
        try:
            status = await self._reconcile_stage.query(
                confirm_token, self.tokens.next(), self._control_flow_token
            )
        finally:
            self._in_flight = False

        if status.status == TransactionStatusCode.PENDING:
            logger.warning(
                "Confirm uuid=%s still pending at the processor", confirm_token
            )
            return None

        if status.status == TransactionStatusCode.COMPLETED:
            if status.confirmation is None:
                raise RemoteUnavailable(
                    "Processor reported completion without confirmation details",
                    code="MALFORMED_RESPONSE",
                    stage=Stage.RECONCILE,
                )
            self._confirmation = status.confirmation
            self._transition(TransactionState.CONFIRMED, "reconciled")
            self._emit_reconciled(status.status, status.confirmation.transaction_reference)
            return status.confirmation

        self._emit_reconciled(status.status, None)
        self._fail(
            Stage.CONFIRM,
            RemoteUnavailable(
                f"Transaction was not executed: {status.message or status.status.value}",
                code=f"RECONCILED_{status.status.value.upper()}",
                stage=Stage.CONFIRM,
            ),
        )
        return None

    def reset(self) -> None:
        """Restart a failed run from IDLE. Clears all run state."""
        self._check_not_in_flight()
        TransactionStateMachine.validate_transition(
            self._state, TransactionState.IDLE, "only a failed run can restart"
        )
        self._clear_run()
        self._superseded.clear()
        self._transition(TransactionState.IDLE, "reset")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_not_in_flight(self) -> None:
        if self._in_flight:
            raise ConcurrentOperationInProgress(
                f"A {self._state.value} call is already in flight for this run",
                code="CONCURRENT_OPERATION",
            )

    async def _call_with_retries(
        self,
        stage: Stage,
        call: Callable[[IdempotencyToken], Awaitable[T]],
    ) -> T:
        """Run a side-effect-free stage, retrying unavailability.

        Every attempt draws a fresh idempotency token.
        """
        attempt = 0
        while True:
            attempt += 1
            token = self.tokens.next()
            try:
                return await call(token)
            except RemoteUnavailable as e:
                if not e.retryable or attempt >= self.config.max_remote_attempts:
                    raise
                delay = self.config.retry_backoff_seconds * attempt
                logger.warning(
                    "%s unavailable (attempt %d/%d, uuid=%s), retrying in %.2fs: %s",
                    stage.value,
                    attempt,
                    self.config.max_remote_attempts,
                    token,
                    delay,
                    e.message,
                )
                await self._sleep(delay)

    def _transition(self, to_state: TransactionState, reason: str | None = None) -> None:
        from_state = self._state
        TransactionStateMachine.validate_transition(from_state, to_state, reason)
        self._state = to_state
        logger.debug(
            "Run %s: %s -> %s%s",
            self.run_id,
            from_state.value,
            to_state.value,
            f" ({reason})" if reason else "",
        )
        self._emit(StateChanged, from_state=from_state.value, to_state=to_state.value, reason=reason)

    def _supersede(self, reason: str) -> None:
        """Discard the outstanding control-flow token. It is never confirmed."""
        token = self._control_flow_token
        self._control_flow_token = None
        self._quote = None
        self._quote_expires_at = None
        if token is None:
            return
        self._superseded.add(token)
        logger.info("Control-flow token %s superseded (%s)", token, reason)
        self._emit(QuoteSuperseded, control_flow_token=token.value, reason=reason)

    def _fail(self, stage: Stage, error: TransactionError) -> None:
        self._supersede("failed")
        self._failure = FailureRecord(stage=stage, error=error)
        self._transition(TransactionState.FAILED, f"{stage.value}: {error.kind.value}")
        logger.info("Run %s failed at %s: %s", self.run_id, stage.value, error.message)
        self._emit(
            TransactionFailed,
            stage=stage.value,
            error_kind=error.kind.value,
            error_code=error.code,
            message=error.message,
        )

    def _fail_unexpected(self, stage: Stage) -> None:
        logger.exception("Unexpected error during %s for run %s", stage.value, self.run_id)
        self._fail(
            stage,
            RemoteUnavailable(
                f"Unexpected error during {stage.value}", code="UNEXPECTED_ERROR", stage=stage
            ),
        )

    def _enter_ambiguous(self, error: AmbiguousOutcomeError) -> None:
        self._ambiguity = error
        self._transition(TransactionState.AMBIGUOUS_OUTCOME, error.code)
        logger.warning(
            "Confirm outcome unknown for token %s (uuid=%s); reconciliation required",
            self._control_flow_token,
            self._confirm_idempotency_token,
        )
        self._emit(
            OutcomeAmbiguous,
            control_flow_token=self._control_flow_token.value,
            idempotency_token=self._confirm_idempotency_token.value,
            cause=error.message,
        )

    def _emit_reconciled(self, status: TransactionStatusCode, reference: str | None) -> None:
        self._emit(
            OutcomeReconciled,
            control_flow_token=self._control_flow_token.value,
            idempotency_token=self._confirm_idempotency_token.value,
            status=status.value,
            transaction_reference=reference,
        )

    def _emit(self, event_type: type[DomainEvent], **payload: Any) -> None:
        metadata = EventMetadata.create(
            run_id=self.run_id,
            causation_id=self._last_event_id,
            timestamp=self._clock(),
        )
        event = event_type(metadata=metadata, **payload)
        self._last_event_id = metadata.event_id
        self.emitter.emit(event)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
