"""Tests for the HTTP processor client against the sandbox API.

The client talks to the FastAPI app in-process through ASGITransport, so
these runs exercise the full wire contract: headers, camelCase bodies,
error bodies and their normalization.
"""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from money_movement.rails.config import OrchestratorConfig
from money_movement.rails.errors import (
    AmbiguousOutcomeError,
    AuthenticationRequired,
    InsufficientFunds,
    ProcessorRejection,
    RemoteUnavailable,
)
from money_movement.rails.orchestrator import TransactionOrchestrator
from money_movement.rails.providers.http import HttpPaymentProcessor
from money_movement.rails.state_machine import TransactionState
from money_movement.rails.tokens import IdempotencyToken
from money_movement.rails.types import PaymentRail, TransactionStatusCode

pytestmark = pytest.mark.asyncio


@pytest.fixture
def http_processor(client: AsyncClient, processor_config) -> HttpPaymentProcessor:
    return HttpPaymentProcessor(processor_config, "session-alice", client=client)


@pytest.fixture
def remote(http_processor, clock) -> TransactionOrchestrator:
    """Orchestrator driving the sandbox over HTTP."""
    return TransactionOrchestrator(
        http_processor,
        config=OrchestratorConfig(retry_backoff_seconds=0),
        clock=clock,
    )


def mock_processor(processor_config, handler) -> HttpPaymentProcessor:
    client = AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return HttpPaymentProcessor(processor_config, "session-alice", client=client)


class TestOrchestrationOverHttp:
    async def test_full_run(self, remote, processor, intent):
        eligibility = await remote.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        assert eligibility.get_destination("D1").display_name == "Electric Co"

        quote = await remote.preprocess(intent)
        assert quote.fee.amount == 150
        assert quote.expires_at is not None

        confirmation = await remote.confirm()

        assert confirmation.transaction_reference == "REF-001"
        assert confirmation.balance.available_balance.amount == 994_850
        assert remote.state == TransactionState.CONFIRMED
        assert {c.session_id for c in processor.calls} == {"session-alice"}

    async def test_cross_border_fx_survives_the_wire(self, remote, make_intent):
        await remote.check_eligibility(PaymentRail.CROSS_BORDER_WIRE, "SOURCE_CURRENCY")
        quote = await remote.preprocess(
            make_intent(
                rail=PaymentRail.CROSS_BORDER_WIRE, subtype="SOURCE_CURRENCY", amount=10_000
            )
        )

        assert str(quote.fx_rate) == "0.9200"
        assert quote.credit.amount == 9200
        assert quote.credit.currency == "EUR"

    async def test_business_rejection_normalized(self, remote, make_intent):
        await remote.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")

        with pytest.raises(InsufficientFunds) as exc_info:
            await remote.preprocess(make_intent(amount=2_000_000))

        assert exc_info.value.code == "INSUFFICIENT_FUNDS"
        assert remote.state == TransactionState.ELIGIBLE

    async def test_lost_confirm_reply_reconciles(self, remote, processor, intent):
        await remote.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        await remote.preprocess(intent)
        processor.simulate_timeout("confirm", after_effect=True)

        with pytest.raises(AmbiguousOutcomeError):
            await remote.confirm()
        assert remote.state == TransactionState.AMBIGUOUS_OUTCOME

        confirmation = await remote.reconcile()

        assert confirmation.transaction_reference == "REF-001"
        assert remote.state == TransactionState.CONFIRMED

    async def test_missing_session_fails_without_request(self, client, processor_config, processor):
        orchestrator = TransactionOrchestrator(
            HttpPaymentProcessor(processor_config, None, client=client)
        )

        with pytest.raises(AuthenticationRequired):
            await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")

        assert orchestrator.state == TransactionState.FAILED
        assert processor.calls == []


class TestHttpProcessor:
    async def test_access_token_read_per_request(self, client, processor_config, processor):
        tokens = iter(["session-1", "session-2"])
        http_processor = HttpPaymentProcessor(processor_config, lambda: next(tokens), client=client)

        await http_processor.check_eligibility(
            PaymentRail.BILL_PAYMENT, "UTILITY", IdempotencyToken("uuid-1")
        )
        await http_processor.check_eligibility(
            PaymentRail.BILL_PAYMENT, "UTILITY", IdempotencyToken("uuid-2")
        )

        assert [c.session_id for c in processor.calls] == ["session-1", "session-2"]

    async def test_status_query(self, http_processor, processor):
        status = await http_processor.get_transaction_status(
            IdempotencyToken("uuid-9"), IdempotencyToken("uuid-10")
        )
        assert status.status == TransactionStatusCode.NOT_FOUND
        [call] = processor.calls_for("status")
        assert (call.lookup_token, call.idempotency_token) == ("uuid-9", "uuid-10")

    async def test_request_headers(self, processor_config):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"sourceAccounts": [], "payees": []})

        http_processor = mock_processor(processor_config, handler)
        await http_processor.check_eligibility(
            PaymentRail.ACCOUNT_PROXY, "PAY_BY_PHONE", IdempotencyToken("uuid-7")
        )

        [request] = seen
        assert request.url.path == "/api/v1/money-movement/ACCOUNT_PROXY/eligibility"
        assert request.url.params["subtype"] == "PAY_BY_PHONE"
        assert request.headers["Authorization"] == "Bearer session-alice"
        assert request.headers["client_id"] == "web-dashboard"
        assert request.headers["uuid"] == "uuid-7"

    async def test_malformed_success_body(self, processor_config):
        http_processor = mock_processor(
            processor_config, lambda request: httpx.Response(200, text="<html>oops</html>")
        )

        with pytest.raises(ProcessorRejection) as exc_info:
            await http_processor.check_eligibility(
                PaymentRail.BILL_PAYMENT, "UTILITY", IdempotencyToken("uuid-1")
            )

        assert exc_info.value.status_code == 502
        assert exc_info.value.code == "MALFORMED_RESPONSE"

    async def test_error_without_body(self, processor_config):
        http_processor = mock_processor(
            processor_config, lambda request: httpx.Response(503, text="upstream down")
        )

        with pytest.raises(ProcessorRejection) as exc_info:
            await http_processor.check_eligibility(
                PaymentRail.BILL_PAYMENT, "UTILITY", IdempotencyToken("uuid-1")
            )

        assert exc_info.value.status_code == 503
        assert exc_info.value.code is None
        assert exc_info.value.details == "upstream down"

    async def test_malformed_response_is_unavailability(self, processor_config, clock):
        http_processor = mock_processor(
            processor_config, lambda request: httpx.Response(200, json={"unexpected": True})
        )
        orchestrator = TransactionOrchestrator(
            http_processor,
            config=OrchestratorConfig(max_remote_attempts=1),
            clock=clock,
        )

        with pytest.raises(RemoteUnavailable) as exc_info:
            await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        assert exc_info.value.code == "MALFORMED_RESPONSE"

    async def test_transport_error_is_unavailability(self, processor_config, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        orchestrator = TransactionOrchestrator(
            mock_processor(processor_config, handler),
            config=OrchestratorConfig(max_remote_attempts=2, retry_backoff_seconds=0),
            clock=clock,
        )

        with pytest.raises(RemoteUnavailable) as exc_info:
            await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        assert exc_info.value.code == "TRANSPORT_ERROR"

    async def test_closes_only_own_client(self, client, processor_config):
        borrowed = HttpPaymentProcessor(processor_config, "t", client=client)
        await borrowed.aclose()
        assert client.is_closed is False

        async with HttpPaymentProcessor(processor_config, "t") as owned:
            pass
        assert owned._client.is_closed is True
