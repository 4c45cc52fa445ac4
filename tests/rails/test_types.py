"""Tests for transaction value types."""

from dataclasses import FrozenInstanceError
from decimal import Decimal

import pytest

from money_movement.rails.types import (
    Destination,
    EligibilityResult,
    Money,
    PaymentRail,
    Quote,
    SourceAccount,
    TransactionIntent,
    is_currency_code,
)


class TestPaymentRail:
    """Test rail subtype enumeration."""

    def test_subtypes(self):
        assert PaymentRail.ACCOUNT_PROXY.accepts("PAY_BY_PHONE") is True
        assert PaymentRail.BILL_PAYMENT.accepts("UTILITY") is True
        assert PaymentRail.CROSS_BORDER_WIRE.accepts("SOURCE_CURRENCY") is True
        assert PaymentRail.STANDING_INSTRUCTION.accepts("SEPA") is True

    def test_subtype_belongs_to_one_rail(self):
        assert PaymentRail.BILL_PAYMENT.accepts("PAY_BY_PHONE") is False
        assert PaymentRail.ACCOUNT_PROXY.accepts("UTILITY") is False

    def test_proxy_destinations_are_not_registered(self):
        assert PaymentRail.ACCOUNT_PROXY.requires_registered_destination is False
        assert PaymentRail.BILL_PAYMENT.requires_registered_destination is True
        assert PaymentRail.CROSS_BORDER_WIRE.requires_registered_destination is True

    def test_currency_codes(self):
        assert is_currency_code("USD") is True
        assert is_currency_code("usd") is False
        assert is_currency_code("US") is False
        assert is_currency_code("") is False


class TestTransactionIntent:
    """Test intent validation."""

    def _intent(self, **overrides):
        fields = dict(
            rail=PaymentRail.BILL_PAYMENT,
            subtype="UTILITY",
            source_account_id="A1",
            destination_id="D1",
            amount=5000,
            currency="USD",
        )
        fields.update(overrides)
        return TransactionIntent(**fields)

    def test_valid_intent(self):
        assert self._intent().validate() == []

    @pytest.mark.parametrize("amount", [0, -1, -5000])
    def test_non_positive_amount(self, amount):
        errors = self._intent(amount=amount).validate()
        assert errors == ["Amount must be greater than zero"]

    @pytest.mark.parametrize("amount", [50.0, "5000", True, Decimal("50")])
    def test_non_integer_amount(self, amount):
        errors = self._intent(amount=amount).validate()
        assert errors == ["Amount must be an integer number of minor units"]

    def test_missing_parties(self):
        errors = self._intent(source_account_id="", destination_id="").validate()
        assert "Source account is required" in errors
        assert "Destination is required" in errors

    def test_subtype_must_match_rail(self):
        errors = self._intent(subtype="PAY_BY_EMAIL").validate()
        assert len(errors) == 1
        assert "PAY_BY_EMAIL" in errors[0]

    def test_unknown_rail(self):
        errors = self._intent(rail="CARRIER_PIGEON").validate()
        assert errors == ["Unknown payment rail 'CARRIER_PIGEON'"]

    def test_reports_every_problem(self):
        errors = self._intent(amount=0, currency="dollars", destination_id="").validate()
        assert len(errors) == 3

    def test_immutable(self):
        intent = self._intent()
        with pytest.raises(FrozenInstanceError):
            intent.amount = 6000

    def test_attributes_read_only(self):
        attributes = {"accountReference": "INV-42"}
        intent = self._intent(attributes=attributes)

        attributes["accountReference"] = "INV-99"
        with pytest.raises(TypeError):
            intent.attributes["accountReference"] = "INV-99"

        assert intent.attributes == {"accountReference": "INV-42"}
        assert intent.with_changes(amount=6000).attributes == intent.attributes

    def test_with_changes_copies(self):
        intent = self._intent()
        edited = intent.with_changes(amount=6000)

        assert edited.amount == 6000
        assert intent.amount == 5000
        assert edited.destination_id == intent.destination_id


class TestEligibilityResult:
    """Test eligibility lookups."""

    def test_lookups_and_usable_accounts(self):
        result = EligibilityResult(
            rail=PaymentRail.BILL_PAYMENT,
            subtype="UTILITY",
            source_accounts=(
                SourceAccount("A1", "Checking", "xxxx0001", Money(10_000, "USD")),
                SourceAccount("A2", "Savings", "xxxx0002", Money(0, "USD")),
            ),
            destinations=(Destination("D1", "Electric Co"),),
        )

        assert [a.account_id for a in result.usable_source_accounts] == ["A1"]
        assert result.get_source_account("A2").display_name == "Savings"
        assert result.get_source_account("A9") is None
        assert result.get_destination("D1").display_name == "Electric Co"
        assert result.get_destination("D9") is None

    def test_empty_lists_by_default(self):
        result = EligibilityResult(rail=PaymentRail.ACCOUNT_PROXY, subtype="PAY_BY_PHONE")
        assert result.source_accounts == ()
        assert result.destinations == ()


class TestQuote:
    def test_to_dict(self):
        quote = Quote(
            debit=Money(5000, "USD"),
            credit=Money(4600, "EUR"),
            fee=Money(2500, "USD"),
            fx_rate=Decimal("0.92"),
        )

        assert quote.to_dict() == {
            "debit": {"amount": 5000, "currency": "USD"},
            "credit": {"amount": 4600, "currency": "EUR"},
            "fee": {"amount": 2500, "currency": "USD"},
            "fx_rate": "0.92",
            "expires_at": None,
        }

    def test_money_str(self):
        assert str(Money(150, "USD")) == "150 USD"
