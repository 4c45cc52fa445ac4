"""Tests for the eligibility gate."""

import pytest

from money_movement.rails.errors import IneligibleParty, RemoteUnavailable, ValidationError
from money_movement.rails.services import EligibilityGate
from money_movement.rails.state_machine import Stage
from money_movement.rails.tokens import IdempotencyToken
from money_movement.rails.types import (
    Destination,
    EligibilityResult,
    Money,
    PaymentRail,
    SourceAccount,
)


@pytest.fixture
def eligibility() -> EligibilityResult:
    return EligibilityResult(
        rail=PaymentRail.BILL_PAYMENT,
        subtype="UTILITY",
        source_accounts=(SourceAccount("A1", "Checking", "xxxx0001", Money(10_000, "USD")),),
        destinations=(Destination("D1", "Electric Co"),),
    )


class TestValidateRail:
    """Rail and subtype checks happen before any request."""

    def test_accepts_string_rail(self):
        assert EligibilityGate.validate_rail("BILL_PAYMENT", "UTILITY") is PaymentRail.BILL_PAYMENT

    def test_unknown_rail(self):
        with pytest.raises(ValidationError) as exc_info:
            EligibilityGate.validate_rail("CARRIER_PIGEON", "UTILITY")
        assert exc_info.value.code == "UNSUPPORTED_RAIL"

    def test_subtype_of_other_rail(self):
        with pytest.raises(ValidationError) as exc_info:
            EligibilityGate.validate_rail(PaymentRail.BILL_PAYMENT, "PAY_BY_EMAIL")

        assert exc_info.value.code == "UNSUPPORTED_SUBTYPE"
        assert exc_info.value.stage == Stage.ELIGIBILITY
        assert "UTILITY" in exc_info.value.message


class TestCheckEligibility:
    @pytest.mark.asyncio
    async def test_sends_one_request_with_token(self, processor):
        gate = EligibilityGate(processor)
        result = await gate.check_eligibility(
            PaymentRail.BILL_PAYMENT, "UTILITY", IdempotencyToken("uuid-1")
        )

        assert result.rail is PaymentRail.BILL_PAYMENT
        assert len(processor.calls) == 1
        assert processor.calls[0].idempotency_token == "uuid-1"

    @pytest.mark.asyncio
    async def test_invalid_subtype_sends_nothing(self, processor):
        gate = EligibilityGate(processor)
        with pytest.raises(ValidationError):
            await gate.check_eligibility(
                PaymentRail.ACCOUNT_PROXY, "UTILITY", IdempotencyToken("uuid-1")
            )
        assert processor.calls == []

    @pytest.mark.asyncio
    async def test_timeout_normalized(self, processor):
        processor.simulate_timeout("eligibility")
        gate = EligibilityGate(processor)

        with pytest.raises(RemoteUnavailable) as exc_info:
            await gate.check_eligibility(
                PaymentRail.BILL_PAYMENT, "UTILITY", IdempotencyToken("uuid-1")
            )

        assert exc_info.value.code == "TIMEOUT"
        assert exc_info.value.stage == Stage.ELIGIBILITY
        assert isinstance(exc_info.value.__cause__, TimeoutError)


class TestCheckIntent:
    """Client-side checks against eligibility hints."""

    def test_eligible_intent(self, make_intent, eligibility):
        EligibilityGate.check_intent(make_intent(), eligibility)

    def test_rail_mismatch(self, make_intent, eligibility):
        intent = make_intent(subtype="TELECOM")
        with pytest.raises(ValidationError) as exc_info:
            EligibilityGate.check_intent(intent, eligibility)
        assert exc_info.value.code == "RAIL_MISMATCH"

    def test_source_not_in_hints(self, make_intent, eligibility):
        with pytest.raises(IneligibleParty) as exc_info:
            EligibilityGate.check_intent(make_intent(source_account_id="A9"), eligibility)
        assert exc_info.value.code == "INELIGIBLE_SOURCE_ACCOUNT"

    def test_payee_not_in_hints(self, make_intent, eligibility):
        with pytest.raises(IneligibleParty) as exc_info:
            EligibilityGate.check_intent(make_intent(destination_id="D9"), eligibility)
        assert exc_info.value.code == "INELIGIBLE_PAYEE"

    def test_proxy_destination_not_checked(self, make_intent):
        eligibility = EligibilityResult(
            rail=PaymentRail.ACCOUNT_PROXY,
            subtype="PAY_BY_EMAIL",
            source_accounts=(SourceAccount("A1", "Checking", "xxxx0001", Money(10_000, "USD")),),
        )
        intent = make_intent(
            rail=PaymentRail.ACCOUNT_PROXY,
            subtype="PAY_BY_EMAIL",
            destination_id="someone@example.com",
        )
        EligibilityGate.check_intent(intent, eligibility)

    def test_party_checks_can_be_disabled(self, make_intent, eligibility):
        intent = make_intent(source_account_id="A9", destination_id="D9")
        EligibilityGate.check_intent(intent, eligibility, check_parties=False)

    def test_rail_mismatch_checked_even_when_parties_are_not(self, make_intent, eligibility):
        intent = make_intent(rail=PaymentRail.STANDING_INSTRUCTION, subtype="SEPA")
        with pytest.raises(ValidationError):
            EligibilityGate.check_intent(intent, eligibility, check_parties=False)
