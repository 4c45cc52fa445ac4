"""Eligibility gate - which parties may transact on a rail.

Results are non-authoritative hints: nothing is reserved or locked, and
the processor re-validates everything during preprocess.
"""

from __future__ import annotations

from money_movement.rails.errors import IneligibleParty, ValidationError
from money_movement.rails.services.stages import RemoteStage
from money_movement.rails.state_machine import Stage
from money_movement.rails.tokens import IdempotencyToken
from money_movement.rails.types import EligibilityResult, PaymentRail, TransactionIntent


class EligibilityGate(RemoteStage):
    """Queries eligible source accounts and destinations for a rail/subtype."""

    stage = Stage.ELIGIBILITY

    async def check_eligibility(
        self,
        rail: PaymentRail | str,
        subtype: str,
        idempotency_token: IdempotencyToken,
    ) -> EligibilityResult:
        """Check eligibility for a rail and subtype.

        Args:
            rail: Payment rail
            subtype: Payment subtype accepted by the rail
            idempotency_token: Token attached to this single request

        Returns:
            EligibilityResult with both lists populated (possibly empty)

        Raises:
            ValidationError: rail/subtype pair is not accepted (no request sent)
            TransactionError: normalized remote failure
        """
        rail = self.validate_rail(rail, subtype)
        return await self._call(
            self.processor.check_eligibility(rail, subtype, idempotency_token),
            idempotency_token,
        )

    @staticmethod
    def validate_rail(rail: PaymentRail | str, subtype: str) -> PaymentRail:
        """Resolve a rail and check the subtype belongs to it."""
        try:
            rail = PaymentRail(rail)
        except ValueError:
            raise ValidationError(
                f"Unknown payment rail '{rail}'",
                code="UNSUPPORTED_RAIL",
                stage=Stage.ELIGIBILITY,
            ) from None

        if not rail.accepts(subtype):
            raise ValidationError(
                f"Subtype '{subtype}' is not accepted for rail '{rail.value}'. "
                f"Valid: {', '.join(rail.subtypes)}",
                code="UNSUPPORTED_SUBTYPE",
                stage=Stage.ELIGIBILITY,
            )
        return rail

    @staticmethod
    def check_intent(
        intent: TransactionIntent,
        eligibility: EligibilityResult,
        *,
        check_parties: bool = True,
    ) -> None:
        """Check an intent against eligibility hints.

        Client-side membership is an optimization only; the processor
        re-validates server-side.

        Raises:
            ValidationError: intent is for another rail/subtype
            IneligibleParty: source (or registered destination) not in hints
        """
        if intent.rail != eligibility.rail or intent.subtype != eligibility.subtype:
            raise ValidationError(
                f"Intent is for {getattr(intent.rail, 'value', intent.rail)}/{intent.subtype} "
                f"but eligibility was established for "
                f"{eligibility.rail.value}/{eligibility.subtype}",
                code="RAIL_MISMATCH",
                stage=Stage.PREPROCESS,
            )

        if not check_parties:
            return

        if eligibility.get_source_account(intent.source_account_id) is None:
            raise IneligibleParty(
                "Source account is not eligible for this payment",
                code="INELIGIBLE_SOURCE_ACCOUNT",
                stage=Stage.PREPROCESS,
            )

        if (
            intent.rail.requires_registered_destination
            and eligibility.get_destination(intent.destination_id) is None
        ):
            raise IneligibleParty(
                "Destination is not an eligible payee",
                code="INELIGIBLE_PAYEE",
                stage=Stage.PREPROCESS,
            )
