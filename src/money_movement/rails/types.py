"""Value types for payment rail transactions.

All types are immutable (frozen dataclasses). Amounts are integer
minor currency units (cents) paired with an ISO-4217 currency code.
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class PaymentRail(str, Enum):
    """Payment rails served by the orchestration core."""

    ACCOUNT_PROXY = "ACCOUNT_PROXY"
    BILL_PAYMENT = "BILL_PAYMENT"
    CROSS_BORDER_WIRE = "CROSS_BORDER_WIRE"
    STANDING_INSTRUCTION = "STANDING_INSTRUCTION"

    @property
    def subtypes(self) -> tuple[str, ...]:
        """Accepted payment subtypes for this rail."""
        return RAIL_SUBTYPES[self]

    @property
    def requires_registered_destination(self) -> bool:
        """Whether destinations must be payees known to the processor.

        Proxy transfers address ad-hoc phone/email/national-id proxies,
        so their destinations never appear in eligibility results.
        """
        return self is not PaymentRail.ACCOUNT_PROXY

    def accepts(self, subtype: str) -> bool:
        """Check whether a subtype belongs to this rail."""
        return subtype in RAIL_SUBTYPES[self]


RAIL_SUBTYPES: dict[PaymentRail, tuple[str, ...]] = {
    PaymentRail.ACCOUNT_PROXY: (
        "PAY_BY_PHONE",
        "PAY_BY_EMAIL",
        "PAY_BY_NATIONAL_ID",
    ),
    PaymentRail.BILL_PAYMENT: (
        "UTILITY",
        "TELECOM",
        "CREDIT_CARD",
        "INSURANCE",
        "GOVERNMENT",
    ),
    # Transfer currency indicator
    PaymentRail.CROSS_BORDER_WIRE: (
        "SOURCE_CURRENCY",
        "DESTINATION_CURRENCY",
    ),
    # Payment method of the repeating payment
    PaymentRail.STANDING_INSTRUCTION: (
        "INTERNAL_DOMESTIC",
        "EXTERNAL_DOMESTIC",
        "BILL_PAYMENT",
        "SEPA",
        "CROSS_BORDER_WIRE",
        "GLOBAL_TRANSFER",
    ),
}


def is_currency_code(value: str) -> bool:
    """Check for a three-letter upper-case currency code."""
    return bool(_CURRENCY_RE.match(value or ""))


@dataclass(frozen=True)
class Money:
    """An amount in integer minor units of a currency."""

    amount: int
    currency: str

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"

    def to_dict(self) -> dict[str, Any]:
        return {"amount": self.amount, "currency": self.currency}


@dataclass(frozen=True)
class TransactionIntent:
    """A fully specified request to move money over one rail.

    Immutable once submitted for preprocessing. To change an intent
    (e.g. the user edits the amount), build a new one with
    with_changes() and preprocess again.
    """

    rail: PaymentRail
    subtype: str
    source_account_id: str
    destination_id: str
    amount: int  # minor units
    currency: str
    remarks: str = ""
    # Rail-specific parameters, passed through to the processor unmodified
    attributes: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Stored as a read-only copy of the caller's mapping
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def validate(self) -> list[str]:
        """Validate the intent, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []

        if not isinstance(self.rail, PaymentRail):
            errors.append(f"Unknown payment rail '{self.rail}'")
        elif not self.rail.accepts(self.subtype):
            errors.append(
                f"Subtype '{self.subtype}' is not accepted for rail '{self.rail.value}'"
            )

        if not self.source_account_id:
            errors.append("Source account is required")
        if not self.destination_id:
            errors.append("Destination is required")

        # bool is an int subclass; reject it explicitly
        if not isinstance(self.amount, int) or isinstance(self.amount, bool):
            errors.append("Amount must be an integer number of minor units")
        elif self.amount <= 0:
            errors.append("Amount must be greater than zero")

        if not is_currency_code(self.currency):
            errors.append(f"Invalid currency code '{self.currency}'")

        return errors

    def with_changes(self, **changes: Any) -> TransactionIntent:
        """Return a copy of this intent with the given fields replaced."""
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class SourceAccount:
    """An account funds may be debited from."""

    account_id: str
    display_name: str
    display_number: str
    available_balance: Money

    @property
    def usable(self) -> bool:
        """Whether the account can fund anything at all."""
        return self.available_balance.amount > 0


@dataclass(frozen=True)
class Destination:
    """A payee, proxy or counterparty funds may be credited to."""

    destination_id: str
    display_name: str
    display_number: str = ""
    currency: str | None = None


@dataclass(frozen=True)
class EligibilityResult:
    """Eligible parties for a rail and subtype.

    Non-authoritative hints: nothing is reserved or locked. Both
    tuples are always present, possibly empty.
    """

    rail: PaymentRail
    subtype: str
    source_accounts: tuple[SourceAccount, ...] = ()
    destinations: tuple[Destination, ...] = ()

    @property
    def usable_source_accounts(self) -> tuple[SourceAccount, ...]:
        return tuple(a for a in self.source_accounts if a.usable)

    def get_source_account(self, account_id: str) -> SourceAccount | None:
        for account in self.source_accounts:
            if account.account_id == account_id:
                return account
        return None

    def get_destination(self, destination_id: str) -> Destination | None:
        for destination in self.destinations:
            if destination.destination_id == destination_id:
                return destination
        return None


@dataclass(frozen=True)
class Quote:
    """Computed terms of a not-yet-executed transaction."""

    debit: Money
    credit: Money
    fee: Money | None = None
    fx_rate: Decimal | None = None
    expires_at: datetime | None = None  # processor-side expiry, if reported

    def to_dict(self) -> dict[str, Any]:
        return {
            "debit": self.debit.to_dict(),
            "credit": self.credit.to_dict(),
            "fee": self.fee.to_dict() if self.fee else None,
            "fx_rate": str(self.fx_rate) if self.fx_rate is not None else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass(frozen=True)
class BalanceSnapshot:
    """Source account balance reported after execution."""

    account_id: str
    display_number: str
    available_balance: Money


@dataclass(frozen=True)
class ConfirmationResult:
    """Terminal artifact of a successful transaction."""

    transaction_reference: str
    balance: BalanceSnapshot | None = None
    confirmed_at: datetime | None = None


class TransactionStatusCode(str, Enum):
    """Outcome reported by a reconciliation query."""

    COMPLETED = "completed"
    PENDING = "pending"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"


@dataclass(frozen=True)
class TransactionStatus:
    """Result of querying the processor for a confirm attempt."""

    status: TransactionStatusCode
    confirmation: ConfirmationResult | None = None
    message: str = ""
