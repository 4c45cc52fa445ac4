"""Money-movement processor endpoints (sandbox)."""

from fastapi import APIRouter, Query, status

from money_movement.api.dependencies import IdempotencyKey, Processor
from money_movement.api.schemas import (
    ConfirmRequest,
    ConfirmResponse,
    EligibilityResponse,
    PreprocessRequest,
    PreprocessResponse,
    TransactionStatusResponse,
)
from money_movement.rails.tokens import ControlFlowToken, IdempotencyToken
from money_movement.rails.types import PaymentRail

router = APIRouter(prefix="/money-movement", tags=["money-movement"])


@router.get(
    "/{rail}/eligibility",
    response_model=EligibilityResponse,
    response_model_by_alias=True,
)
async def check_eligibility(
    rail: PaymentRail,
    processor: Processor,
    idempotency_token: IdempotencyKey,
    subtype: str = Query(...),
) -> EligibilityResponse:
    """List eligible source accounts and payees for a rail and subtype."""
    result = await processor.check_eligibility(rail, subtype, idempotency_token)
    return EligibilityResponse.from_domain(result)


@router.post(
    "/{rail}/preprocess",
    response_model=PreprocessResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def preprocess(
    rail: PaymentRail,
    body: PreprocessRequest,
    processor: Processor,
    idempotency_token: IdempotencyKey,
) -> PreprocessResponse:
    """Quote an intent and issue a control-flow id."""
    result = await processor.preprocess(body.to_domain(rail), idempotency_token)
    return PreprocessResponse.from_domain(result)


@router.post(
    "/confirm",
    response_model=ConfirmResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def confirm(
    body: ConfirmRequest,
    processor: Processor,
    idempotency_token: IdempotencyKey,
) -> ConfirmResponse:
    """Execute a quoted transaction."""
    result = await processor.confirm(ControlFlowToken(body.control_flow_id), idempotency_token)
    return ConfirmResponse.from_domain(result)


@router.get(
    "/transactions/{idempotency_key}",
    response_model=TransactionStatusResponse,
    response_model_by_alias=True,
)
async def get_transaction_status(
    idempotency_key: str,
    processor: Processor,
    idempotency_token: IdempotencyKey,
    control_flow_id: str | None = Query(None, alias="controlFlowId"),
) -> TransactionStatusResponse:
    """Outcome of a confirm attempt, looked up by its idempotency key."""
    status_result = await processor.get_transaction_status(
        IdempotencyToken(idempotency_key),
        idempotency_token,
        ControlFlowToken(control_flow_id) if control_flow_id else None,
    )
    return TransactionStatusResponse.from_domain(status_result)
