"""Pydantic models for the money-movement REST wire format.

Field names are snake_case in Python and camelCase on the wire
(controlFlowId, transactionReferenceId, ...). Shared by the HTTP
processor client and the sandbox API service.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from money_movement.rails.providers.base import PreprocessResult
from money_movement.rails.tokens import ControlFlowToken
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


class WireModel(BaseModel):
    """Base wire schema: camelCase aliases, snake_case accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MoneyModel(WireModel):
    amount: int
    currency: str

    @classmethod
    def from_domain(cls, money: Money) -> MoneyModel:
        return cls(amount=money.amount, currency=money.currency)

    def to_domain(self) -> Money:
        return Money(self.amount, self.currency)


# ============================================================================
# Eligibility
# ============================================================================


class SourceAccountModel(WireModel):
    account_id: str
    display_name: str
    display_account_number: str
    available_balance: MoneyModel


class DestinationModel(WireModel):
    payee_id: str
    display_name: str
    display_account_number: str = ""
    currency: str | None = None


class EligibilityResponse(WireModel):
    """Eligible source accounts and destinations. Both lists always present."""

    source_accounts: list[SourceAccountModel]
    payees: list[DestinationModel]

    @classmethod
    def from_domain(cls, result: EligibilityResult) -> EligibilityResponse:
        return cls(
            source_accounts=[
                SourceAccountModel(
                    account_id=a.account_id,
                    display_name=a.display_name,
                    display_account_number=a.display_number,
                    available_balance=MoneyModel.from_domain(a.available_balance),
                )
                for a in result.source_accounts
            ],
            payees=[
                DestinationModel(
                    payee_id=d.destination_id,
                    display_name=d.display_name,
                    display_account_number=d.display_number,
                    currency=d.currency,
                )
                for d in result.destinations
            ],
        )

    def to_domain(self, rail: PaymentRail, subtype: str) -> EligibilityResult:
        return EligibilityResult(
            rail=rail,
            subtype=subtype,
            source_accounts=tuple(
                SourceAccount(
                    account_id=a.account_id,
                    display_name=a.display_name,
                    display_number=a.display_account_number,
                    available_balance=a.available_balance.to_domain(),
                )
                for a in self.source_accounts
            ),
            destinations=tuple(
                Destination(
                    destination_id=d.payee_id,
                    display_name=d.display_name,
                    display_number=d.display_account_number,
                    currency=d.currency,
                )
                for d in self.payees
            ),
        )


# ============================================================================
# Preprocess
# ============================================================================


class PreprocessRequest(WireModel):
    """Intent fields submitted for a quote."""

    payment_type: str
    source_account_id: str
    payee_id: str
    transaction_amount: int = Field(gt=0)
    transaction_currency: str = Field(min_length=3, max_length=3)
    remarks: str = ""
    attributes: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, intent: TransactionIntent) -> PreprocessRequest:
        return cls(
            payment_type=intent.subtype,
            source_account_id=intent.source_account_id,
            payee_id=intent.destination_id,
            transaction_amount=intent.amount,
            transaction_currency=intent.currency,
            remarks=intent.remarks,
            attributes=dict(intent.attributes),
        )

    def to_domain(self, rail: PaymentRail) -> TransactionIntent:
        return TransactionIntent(
            rail=rail,
            subtype=self.payment_type,
            source_account_id=self.source_account_id,
            destination_id=self.payee_id,
            amount=self.transaction_amount,
            currency=self.transaction_currency,
            remarks=self.remarks,
            attributes=dict(self.attributes),
        )


class PreprocessResponse(WireModel):
    """Quote terms and the control-flow id bound to them."""

    control_flow_id: str
    debit: MoneyModel
    credit: MoneyModel
    fee: MoneyModel | None = None
    fx_rate: Decimal | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_domain(cls, result: PreprocessResult) -> PreprocessResponse:
        quote = result.quote
        return cls(
            control_flow_id=result.control_flow_token.value,
            debit=MoneyModel.from_domain(quote.debit),
            credit=MoneyModel.from_domain(quote.credit),
            fee=MoneyModel.from_domain(quote.fee) if quote.fee else None,
            fx_rate=quote.fx_rate,
            expires_at=quote.expires_at,
        )

    def to_domain(self) -> PreprocessResult:
        return PreprocessResult(
            control_flow_token=ControlFlowToken(self.control_flow_id),
            quote=Quote(
                debit=self.debit.to_domain(),
                credit=self.credit.to_domain(),
                fee=self.fee.to_domain() if self.fee else None,
                fx_rate=self.fx_rate,
                expires_at=self.expires_at,
            ),
        )


# ============================================================================
# Confirm and status
# ============================================================================


class ConfirmRequest(WireModel):
    control_flow_id: str = Field(min_length=1)


class BalanceModel(WireModel):
    account_id: str
    display_account_number: str
    available_balance: MoneyModel


class ConfirmResponse(WireModel):
    transaction_reference_id: str
    balance: BalanceModel | None = None
    confirmed_at: datetime | None = None

    @classmethod
    def from_domain(cls, result: ConfirmationResult) -> ConfirmResponse:
        balance = None
        if result.balance is not None:
            balance = BalanceModel(
                account_id=result.balance.account_id,
                display_account_number=result.balance.display_number,
                available_balance=MoneyModel.from_domain(result.balance.available_balance),
            )
        return cls(
            transaction_reference_id=result.transaction_reference,
            balance=balance,
            confirmed_at=result.confirmed_at,
        )

    def to_domain(self) -> ConfirmationResult:
        balance = None
        if self.balance is not None:
            balance = BalanceSnapshot(
                account_id=self.balance.account_id,
                display_number=self.balance.display_account_number,
                available_balance=self.balance.available_balance.to_domain(),
            )
        return ConfirmationResult(
            transaction_reference=self.transaction_reference_id,
            balance=balance,
            confirmed_at=self.confirmed_at,
        )


class TransactionStatusResponse(WireModel):
    status: TransactionStatusCode
    confirmation: ConfirmResponse | None = None
    message: str = ""

    @classmethod
    def from_domain(cls, status: TransactionStatus) -> TransactionStatusResponse:
        return cls(
            status=status.status,
            confirmation=(
                ConfirmResponse.from_domain(status.confirmation)
                if status.confirmation
                else None
            ),
            message=status.message,
        )

    def to_domain(self) -> TransactionStatus:
        return TransactionStatus(
            status=self.status,
            confirmation=self.confirmation.to_domain() if self.confirmation else None,
            message=self.message,
        )


class ErrorBody(WireModel):
    """Error body sent by the processor with any non-2xx status."""

    code: str | None = None
    details: str = ""
