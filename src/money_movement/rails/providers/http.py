"""REST transport for the money-movement processor.

Wire contract:
    GET  /api/v1/money-movement/{rail}/eligibility?subtype=...
    POST /api/v1/money-movement/{rail}/preprocess
    POST /api/v1/money-movement/confirm
    GET  /api/v1/money-movement/transactions/{idempotency_key}

Headers on every request:
    Authorization: Bearer <access token>
    client_id:     <client id>
    uuid:          <idempotency token>

Non-2xx responses carry {"code", "details"} and are raised as
ProcessorRejection. Transport exceptions propagate unchanged; the
stages normalize both.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from money_movement.rails.config import ProcessorConfig
from money_movement.rails.errors import AuthenticationRequired, ProcessorRejection
from money_movement.rails.providers.base import PreprocessResult
from money_movement.rails.providers.wire import (
    ConfirmRequest,
    ConfirmResponse,
    EligibilityResponse,
    ErrorBody,
    PreprocessRequest,
    PreprocessResponse,
    TransactionStatusResponse,
)
from money_movement.rails.tokens import ControlFlowToken, IdempotencyToken
from money_movement.rails.types import (
    ConfirmationResult,
    EligibilityResult,
    PaymentRail,
    TransactionIntent,
    TransactionStatus,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/money-movement"
IDEMPOTENCY_HEADER = "uuid"
CLIENT_ID_HEADER = "client_id"

ModelT = TypeVar("ModelT", bound=BaseModel)

AccessTokenSource = Callable[[], "str | None"]


class HttpPaymentProcessor:
    """Payment processor reached over HTTP.

    The access token comes from the caller's session collaborator. It is
    read before every request, so a refreshed session is picked up
    without rebuilding the processor.
    """

    processor_name = "http"

    def __init__(
        self,
        config: ProcessorConfig,
        access_token: str | AccessTokenSource | None,
        *,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the HTTP processor.

        Args:
            config: Processor endpoint configuration.
            access_token: Session access token, or a callable returning it.
            client: Optional pre-built client (tests pass one bound to an
                ASGI app). The processor closes only clients it created.
        """
        self.config = config
        self._access_token = access_token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpPaymentProcessor:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # PaymentProcessor protocol
    # ------------------------------------------------------------------

    async def check_eligibility(
        self,
        rail: PaymentRail,
        subtype: str,
        idempotency_token: IdempotencyToken,
    ) -> EligibilityResult:
        response = await self._request(
            "GET",
            f"{API_PREFIX}/{rail.value}/eligibility",
            idempotency_token,
            params={"subtype": subtype},
        )
        return self._decode(response, EligibilityResponse).to_domain(rail, subtype)

    async def preprocess(
        self,
        intent: TransactionIntent,
        idempotency_token: IdempotencyToken,
    ) -> PreprocessResult:
        body = PreprocessRequest.from_domain(intent).model_dump(mode="json", by_alias=True)
        response = await self._request(
            "POST",
            f"{API_PREFIX}/{intent.rail.value}/preprocess",
            idempotency_token,
            json=body,
        )
        return self._decode(response, PreprocessResponse).to_domain()

    async def confirm(
        self,
        control_flow_token: ControlFlowToken,
        idempotency_token: IdempotencyToken,
    ) -> ConfirmationResult:
        body = ConfirmRequest(control_flow_id=control_flow_token.value)
        response = await self._request(
            "POST",
            f"{API_PREFIX}/confirm",
            idempotency_token,
            json=body.model_dump(by_alias=True),
        )
        return self._decode(response, ConfirmResponse).to_domain()

    async def get_transaction_status(
        self,
        lookup_token: IdempotencyToken,
        idempotency_token: IdempotencyToken,
        control_flow_token: ControlFlowToken | None = None,
    ) -> TransactionStatus:
        params = {}
        if control_flow_token is not None:
            params["controlFlowId"] = control_flow_token.value
        response = await self._request(
            "GET",
            f"{API_PREFIX}/transactions/{lookup_token.value}",
            idempotency_token,
            params=params,
        )
        return self._decode(response, TransactionStatusResponse).to_domain()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _resolve_access_token(self) -> str | None:
        if callable(self._access_token):
            return self._access_token()
        return self._access_token

    async def _request(
        self,
        method: str,
        path: str,
        idempotency_token: IdempotencyToken,
        **kwargs: Any,
    ) -> httpx.Response:
        access_token = self._resolve_access_token()
        if not access_token:
            raise AuthenticationRequired("No access token for the current session")

        headers = {
            "Authorization": f"Bearer {access_token}",
            CLIENT_ID_HEADER: self.config.client_id,
            IDEMPOTENCY_HEADER: idempotency_token.value,
        }
        logger.debug("%s %s uuid=%s", method, path, idempotency_token)
        response = await self._client.request(method, path, headers=headers, **kwargs)

        if response.is_success:
            return response

        raise self._rejection(response)

    def _rejection(self, response: httpx.Response) -> ProcessorRejection:
        try:
            body = ErrorBody.model_validate(response.json())
        except (ValueError, PydanticValidationError):
            return ProcessorRejection(response.status_code, None, response.text[:200])
        return ProcessorRejection(response.status_code, body.code, body.details)

    def _decode(self, response: httpx.Response, model: type[ModelT]) -> ModelT:
        try:
            return model.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            logger.warning("Undecodable %s body from processor: %s", model.__name__, e)
            raise ProcessorRejection(502, "MALFORMED_RESPONSE", str(e)) from e
