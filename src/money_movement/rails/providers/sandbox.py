"""Sandbox payment processor for development and testing.

Implements the three-stage protocol in memory with the same observable
rules a real processor enforces: single-use control-flow tokens,
supersession of older quotes, server-side quote expiry, and replay of a
confirm by its idempotency token.
"""

from __future__ import annotations

import asyncio
import datetime
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable

from money_movement.rails.errors import ProcessorRejection
from money_movement.rails.providers.base import PreprocessResult
from money_movement.rails.tokens import ControlFlowToken, IdempotencyToken
from money_movement.rails.types import (
    BalanceSnapshot,
    ConfirmationResult,
    Destination,
    EligibilityResult,
    Money,
    PaymentRail,
    Quote,
    SourceAccount,
    TransactionIntent,
    TransactionStatus,
    TransactionStatusCode,
)

OPERATIONS = ("eligibility", "preprocess", "confirm", "status")

# Flat fee per rail, in minor units of the source account currency
DEFAULT_FEES: dict[PaymentRail, int] = {
    PaymentRail.ACCOUNT_PROXY: 0,
    PaymentRail.BILL_PAYMENT: 150,
    PaymentRail.CROSS_BORDER_WIRE: 2500,
    PaymentRail.STANDING_INSTRUCTION: 0,
}

DEFAULT_FX_RATES: dict[tuple[str, str], Decimal] = {
    ("USD", "EUR"): Decimal("0.9200"),
    ("USD", "GBP"): Decimal("0.7900"),
    ("USD", "MXN"): Decimal("17.1000"),
    ("EUR", "USD"): Decimal("1.0870"),
}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class SandboxAccount:
    """Source account held by the sandbox."""

    account_id: str
    display_name: str
    display_number: str
    balance: int
    currency: str
    rails: frozenset[PaymentRail]

    def to_source_account(self) -> SourceAccount:
        return SourceAccount(
            account_id=self.account_id,
            display_name=self.display_name,
            display_number=self.display_number,
            available_balance=Money(self.balance, self.currency),
        )


@dataclass
class QuoteRecord:
    """A control-flow token and what it authorizes."""

    token: ControlFlowToken
    session_id: str
    intent: TransactionIntent
    quote: Quote
    fee: int
    issued_at: datetime.datetime
    expires_at: datetime.datetime
    status: str = "outstanding"  # outstanding, superseded, expired, used


@dataclass(frozen=True)
class SandboxCall:
    """One call received by the sandbox."""

    operation: str
    idempotency_token: str
    session_id: str
    control_flow_token: str | None = None
    # Status queries only: the confirm being looked up
    lookup_token: str | None = None


@dataclass
class SandboxState:
    """Processor-side state shared by every session view."""

    accounts: dict[str, SandboxAccount] = field(default_factory=dict)
    destinations: dict[PaymentRail, dict[str, Destination]] = field(
        default_factory=lambda: defaultdict(dict)
    )
    quotes: dict[str, QuoteRecord] = field(default_factory=dict)
    outstanding: dict[str, str] = field(default_factory=dict)  # session -> token
    confirmations: dict[str, tuple[str, ConfirmationResult]] = field(default_factory=dict)
    calls: list[SandboxCall] = field(default_factory=list)
    actions: dict[str, deque[tuple[str, Any]]] = field(
        default_factory=lambda: defaultdict(deque)
    )
    gates: dict[str, deque[asyncio.Event]] = field(
        default_factory=lambda: defaultdict(deque)
    )
    sequence: int = 0


class SandboxProcessor:
    """In-memory payment processor.

    In production this would be replaced by HttpPaymentProcessor talking
    to the bank's money-movement API. The sandbox additionally offers
    hooks to inject failures and to hold calls in flight:

        processor.fail_next("preprocess", ProcessorRejection(503, "SERVICE_UNAVAILABLE"))
        processor.simulate_timeout("confirm", after_effect=True)
        gate = processor.hold("preprocess")   # call blocks until gate.set()
    """

    processor_name = "sandbox"

    def __init__(
        self,
        *,
        quote_ttl_seconds: int = 300,
        clock: Callable[[], datetime.datetime] | None = None,
        fees: dict[PaymentRail, int] | None = None,
        fx_rates: dict[tuple[str, str], Decimal] | None = None,
        reference_prefix: str = "REF",
        session_id: str = "default",
        state: SandboxState | None = None,
    ):
        """Initialize sandbox processor.

        Args:
            quote_ttl_seconds: Lifetime of an issued control-flow token.
            clock: Returns the current aware datetime. Defaults to UTC now.
            fees: Flat fee per rail in minor units.
            fx_rates: (from, to) currency pair → rate.
            reference_prefix: Prefix of transaction reference ids.
            session_id: Caller session this view acts for. Supersession is
                tracked per session.
            state: Shared processor state (used by for_session()).
        """
        self.quote_ttl = datetime.timedelta(seconds=quote_ttl_seconds)
        self.clock = clock or _utcnow
        self.fees = dict(DEFAULT_FEES if fees is None else fees)
        self.fx_rates = dict(DEFAULT_FX_RATES if fx_rates is None else fx_rates)
        self.reference_prefix = reference_prefix
        self.session_id = session_id
        self._state = state or SandboxState()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    @classmethod
    def with_demo_data(cls, **kwargs: Any) -> SandboxProcessor:
        """Sandbox seeded with one funded account and one payee per rail."""
        processor = cls(**kwargs)
        processor.add_source_account("A1", balance=1_000_000, display_name="Everyday Checking")
        processor.add_source_account("A2", balance=0, display_name="Dormant Savings")
        processor.add_destination(PaymentRail.BILL_PAYMENT, "D1", "Electric Co")
        processor.add_destination(PaymentRail.CROSS_BORDER_WIRE, "D1", "Acme GmbH", currency="EUR")
        processor.add_destination(PaymentRail.STANDING_INSTRUCTION, "D1", "Landlord LLC")
        return processor

    def for_session(self, session_id: str) -> SandboxProcessor:
        """View of the same processor acting for another caller session."""
        return SandboxProcessor(
            quote_ttl_seconds=int(self.quote_ttl.total_seconds()),
            clock=self.clock,
            fees=self.fees,
            fx_rates=self.fx_rates,
            reference_prefix=self.reference_prefix,
            session_id=session_id,
            state=self._state,
        )

    def add_source_account(
        self,
        account_id: str,
        *,
        balance: int,
        currency: str = "USD",
        display_name: str | None = None,
        display_number: str | None = None,
        rails: set[PaymentRail] | None = None,
    ) -> None:
        self._state.accounts[account_id] = SandboxAccount(
            account_id=account_id,
            display_name=display_name or account_id,
            display_number=display_number or f"xxxx{account_id[-4:]}",
            balance=balance,
            currency=currency,
            rails=frozenset(rails or set(PaymentRail)),
        )

    def add_destination(
        self,
        rail: PaymentRail,
        destination_id: str,
        display_name: str,
        *,
        currency: str = "USD",
        display_number: str | None = None,
    ) -> None:
        self._state.destinations[rail][destination_id] = Destination(
            destination_id=destination_id,
            display_name=display_name,
            display_number=display_number or f"xxxx{destination_id[-4:]}",
            currency=currency,
        )

    def balance_of(self, account_id: str) -> int:
        return self._state.accounts[account_id].balance

    @property
    def calls(self) -> list[SandboxCall]:
        return self._state.calls

    def calls_for(self, operation: str) -> list[SandboxCall]:
        return [c for c in self._state.calls if c.operation == operation]

    def quote_status(self, token: ControlFlowToken | str) -> str | None:
        record = self._state.quotes.get(str(token))
        return record.status if record else None

    # ------------------------------------------------------------------
    # Failure injection
    # ------------------------------------------------------------------

    def fail_next(self, operation: str, error: Exception) -> None:
        """Make the next call of an operation raise before taking effect."""
        self._check_operation(operation)
        self._state.actions[operation].append(("raise", error))

    def simulate_timeout(self, operation: str, *, after_effect: bool = False) -> None:
        """Make the next call of an operation time out.

        With after_effect=True the operation completes processor-side
        before the timeout, which is what makes a confirm ambiguous.
        """
        self._check_operation(operation)
        self._state.actions[operation].append(("timeout", after_effect))

    def hold(self, operation: str) -> asyncio.Event:
        """Block the next call of an operation until the returned event is set."""
        self._check_operation(operation)
        gate = asyncio.Event()
        self._state.gates[operation].append(gate)
        return gate

    def _check_operation(self, operation: str) -> None:
        if operation not in OPERATIONS:
            raise ValueError(f"operation must be one of {OPERATIONS}")

    async def _enter(
        self,
        operation: str,
        idempotency_token: IdempotencyToken,
        control_flow_token: ControlFlowToken | None = None,
        lookup_token: IdempotencyToken | None = None,
    ) -> bool:
        """Record a call, apply holds and injected failures.

        Returns True if the call must time out after taking effect.
        """
        self._state.calls.append(
            SandboxCall(
                operation=operation,
                idempotency_token=str(idempotency_token),
                session_id=self.session_id,
                control_flow_token=str(control_flow_token) if control_flow_token else None,
                lookup_token=str(lookup_token) if lookup_token else None,
            )
        )

        gates = self._state.gates[operation]
        if gates:
            await gates.popleft().wait()

        actions = self._state.actions[operation]
        if not actions:
            return False

        action, arg = actions.popleft()
        if action == "raise":
            raise arg
        if not arg:
            raise TimeoutError(f"sandbox {operation} timed out")
        return True

    # ------------------------------------------------------------------
    # PaymentProcessor protocol
    # ------------------------------------------------------------------

    async def check_eligibility(
        self,
        rail: PaymentRail,
        subtype: str,
        idempotency_token: IdempotencyToken,
    ) -> EligibilityResult:
        """Return accounts enabled for the rail and its registered payees."""
        timeout_after = await self._enter("eligibility", idempotency_token)

        rail = self._rail(rail)
        if not rail.accepts(subtype):
            raise ProcessorRejection(
                400, "UNSUPPORTED_SUBTYPE", f"Subtype {subtype} is not offered on {rail.value}"
            )

        result = EligibilityResult(
            rail=rail,
            subtype=subtype,
            source_accounts=tuple(
                a.to_source_account() for a in self._state.accounts.values() if rail in a.rails
            ),
            destinations=tuple(self._state.destinations[rail].values()),
        )
        if timeout_after:
            raise TimeoutError("sandbox eligibility timed out")
        return result

    async def preprocess(
        self,
        intent: TransactionIntent,
        idempotency_token: IdempotencyToken,
    ) -> PreprocessResult:
        """Quote an intent, superseding this session's outstanding token."""
        timeout_after = await self._enter("preprocess", idempotency_token)

        errors = intent.validate()
        if errors:
            raise ProcessorRejection(400, "INVALID_REQUEST", "; ".join(errors))

        rail = self._rail(intent.rail)
        account = self._state.accounts.get(intent.source_account_id)
        if account is None or rail not in account.rails:
            raise ProcessorRejection(
                422,
                "INELIGIBLE_SOURCE_ACCOUNT",
                f"Source account {intent.source_account_id} cannot pay on {rail.value}",
            )

        destination = self._resolve_destination(rail, intent)
        debit_amount, credit, fx_rate = self._price(rail, intent, account, destination)

        fee_amount = self.fees.get(rail, 0)
        if debit_amount + fee_amount > account.balance:
            raise ProcessorRejection(
                422,
                "INSUFFICIENT_FUNDS",
                f"Available {account.balance} {account.currency}, "
                f"required {debit_amount + fee_amount} {account.currency}",
            )

        now = self.clock()
        quote = Quote(
            debit=Money(debit_amount, account.currency),
            credit=credit,
            fee=Money(fee_amount, account.currency) if fee_amount else None,
            fx_rate=fx_rate,
            expires_at=now + self.quote_ttl,
        )
        token = ControlFlowToken(f"CF-{uuid.uuid4().hex}")

        previous = self._state.outstanding.get(self.session_id)
        if previous and self._state.quotes[previous].status == "outstanding":
            self._state.quotes[previous].status = "superseded"

        self._state.quotes[token.value] = QuoteRecord(
            token=token,
            session_id=self.session_id,
            intent=intent,
            quote=quote,
            fee=fee_amount,
            issued_at=now,
            expires_at=now + self.quote_ttl,
        )
        self._state.outstanding[self.session_id] = token.value

        result = PreprocessResult(control_flow_token=token, quote=quote)
        if timeout_after:
            raise TimeoutError("sandbox preprocess timed out")
        return result

    async def confirm(
        self,
        control_flow_token: ControlFlowToken,
        idempotency_token: IdempotencyToken,
    ) -> ConfirmationResult:
        """Execute a quote exactly once."""
        timeout_after = await self._enter("confirm", idempotency_token, control_flow_token)

        replay = self._state.confirmations.get(str(idempotency_token))
        if replay is not None:
            token_value, confirmation = replay
            if token_value != str(control_flow_token):
                raise ProcessorRejection(
                    400, "INVALID_REQUEST", "Idempotency key was used for another transaction"
                )
            return confirmation

        record = self._state.quotes.get(str(control_flow_token))
        if record is None:
            raise ProcessorRejection(
                404, "CONTROL_FLOW_NOT_FOUND", f"Unknown control flow id {control_flow_token}"
            )
        if record.status == "used":
            raise ProcessorRejection(
                409, "CONTROL_FLOW_ALREADY_USED", "Transaction was already confirmed"
            )
        if record.status == "superseded":
            raise ProcessorRejection(
                410, "CONTROL_FLOW_SUPERSEDED", "A newer quote replaced this one"
            )
        now = self.clock()
        if record.status == "expired" or now >= record.expires_at:
            record.status = "expired"
            raise ProcessorRejection(410, "CONTROL_FLOW_EXPIRED", "Quote has expired")

        account = self._state.accounts[record.intent.source_account_id]
        total = record.quote.debit.amount + record.fee
        if total > account.balance:
            raise ProcessorRejection(
                422, "INSUFFICIENT_FUNDS", "Balance changed since the quote was issued"
            )

        account.balance -= total
        record.status = "used"
        if self._state.outstanding.get(record.session_id) == record.token.value:
            del self._state.outstanding[record.session_id]

        self._state.sequence += 1
        confirmation = ConfirmationResult(
            transaction_reference=f"{self.reference_prefix}-{self._state.sequence:03d}",
            balance=BalanceSnapshot(
                account_id=account.account_id,
                display_number=account.display_number,
                available_balance=Money(account.balance, account.currency),
            ),
            confirmed_at=now,
        )
        self._state.confirmations[str(idempotency_token)] = (record.token.value, confirmation)

        if timeout_after:
            raise TimeoutError("sandbox confirm timed out")
        return confirmation

    async def get_transaction_status(
        self,
        lookup_token: IdempotencyToken,
        idempotency_token: IdempotencyToken,
        control_flow_token: ControlFlowToken | None = None,
    ) -> TransactionStatus:
        """Report whether the confirm sent with lookup_token executed."""
        timeout_after = await self._enter(
            "status", idempotency_token, control_flow_token, lookup_token=lookup_token
        )

        found = self._state.confirmations.get(str(lookup_token))
        if found is not None:
            status = TransactionStatus(
                status=TransactionStatusCode.COMPLETED,
                confirmation=found[1],
                message="Transaction executed",
            )
        else:
            status = TransactionStatus(
                status=TransactionStatusCode.NOT_FOUND,
                message="No transaction was executed for this request",
            )

        if timeout_after:
            raise TimeoutError("sandbox status query timed out")
        return status

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def _rail(self, rail: PaymentRail | str) -> PaymentRail:
        try:
            return PaymentRail(rail)
        except ValueError:
            raise ProcessorRejection(400, "INVALID_REQUEST", f"Unknown rail {rail}") from None

    def _resolve_destination(
        self, rail: PaymentRail, intent: TransactionIntent
    ) -> Destination:
        if not rail.requires_registered_destination:
            # Proxy destinations are resolved by the proxy directory
            return Destination(
                destination_id=intent.destination_id,
                display_name=intent.destination_id,
                currency=intent.currency,
            )

        destination = self._state.destinations[rail].get(intent.destination_id)
        if destination is None:
            raise ProcessorRejection(
                422, "INELIGIBLE_PAYEE", f"Payee {intent.destination_id} is not eligible"
            )
        return destination

    def _price(
        self,
        rail: PaymentRail,
        intent: TransactionIntent,
        account: SandboxAccount,
        destination: Destination,
    ) -> tuple[int, Money, Decimal | None]:
        """Compute debit amount, credit and FX rate for an intent."""
        target_currency = destination.currency or account.currency

        if rail is not PaymentRail.CROSS_BORDER_WIRE or target_currency == account.currency:
            if intent.currency != account.currency:
                raise ProcessorRejection(
                    400,
                    "CURRENCY_MISMATCH",
                    f"Account {account.account_id} is denominated in {account.currency}",
                )
            return intent.amount, Money(intent.amount, target_currency), None

        rate = self.fx_rates.get((account.currency, target_currency))
        if rate is None:
            raise ProcessorRejection(
                400,
                "CURRENCY_MISMATCH",
                f"No FX route from {account.currency} to {target_currency}",
            )

        if intent.subtype == "DESTINATION_CURRENCY":
            if intent.currency != target_currency:
                raise ProcessorRejection(
                    400, "CURRENCY_MISMATCH", f"Amount must be in {target_currency}"
                )
            debit = _round(Decimal(intent.amount) / rate)
            return debit, Money(intent.amount, target_currency), rate

        if intent.currency != account.currency:
            raise ProcessorRejection(
                400, "CURRENCY_MISMATCH", f"Amount must be in {account.currency}"
            )
        credit = _round(Decimal(intent.amount) * rate)
        return intent.amount, Money(credit, target_currency), rate


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
