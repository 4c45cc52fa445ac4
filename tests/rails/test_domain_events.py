"""Tests for orchestration domain events and the emitter."""

import json
from decimal import Decimal
from uuid import uuid4

import pytest

from money_movement.rails.events import (
    DomainEvent,
    EventCategory,
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
from money_movement.rails.errors import (
    AmbiguousOutcomeError,
    AuthenticationRequired,
    ProcessorRejection,
)
from money_movement.rails.types import PaymentRail


def metadata() -> EventMetadata:
    return EventMetadata.create(run_id=uuid4())


class TestEventSerialization:
    def test_to_dict_adds_type_and_category(self, clock):
        event = QuoteIssued(
            metadata=metadata(),
            control_flow_token="CF-1",
            rail="CROSS_BORDER_WIRE",
            debit_currency="USD",
            credit_currency="EUR",
            has_fee=True,
            fx_rate=Decimal("0.9200"),
            expires_at=clock.now,
        )
        data = event.to_dict()

        assert data["event_type"] == "QuoteIssued"
        assert data["category"] == "quote"
        assert data["fx_rate"] == "0.9200"
        assert data["expires_at"] == "2026-01-15T09:30:00+00:00"
        assert isinstance(data["metadata"]["run_id"], str)

    def test_to_json_round_trips_through_json(self):
        event = StateChanged(metadata=metadata(), from_state="idle", to_state="checking_eligibility")
        assert json.loads(event.to_json())["to_state"] == "checking_eligibility"

    def test_events_are_immutable(self):
        event = TransactionConfirmed(
            metadata=metadata(), control_flow_token="CF-1", transaction_reference="REF-001"
        )
        with pytest.raises(AttributeError):
            event.transaction_reference = "REF-002"

    def test_base_event_has_no_category(self):
        with pytest.raises(NotImplementedError):
            DomainEvent(metadata=metadata()).category


class TestEventEmitter:
    def test_routing(self):
        emitter = EventEmitter()
        by_type, by_category, everything = [], [], []
        emitter.on(TransactionConfirmed, by_type.append)
        emitter.on_category(EventCategory.QUOTE, by_category.append)
        emitter.on_all(everything.append)

        confirmed = TransactionConfirmed(
            metadata=metadata(), control_flow_token="CF-1", transaction_reference="REF-001"
        )
        superseded = QuoteSuperseded(metadata=metadata(), control_flow_token="CF-1", reason="requote")
        emitter.emit(confirmed)
        emitter.emit(superseded)

        assert by_type == [confirmed]
        assert by_category == [superseded]
        assert everything == [confirmed, superseded]

    def test_list_registration(self):
        emitter = EventEmitter()
        received = []
        emitter.on([OutcomeAmbiguous, OutcomeReconciled], received.append)

        emitter.emit(
            OutcomeAmbiguous(
                metadata=metadata(), control_flow_token="CF-1", idempotency_token="u", cause="t"
            )
        )
        emitter.emit(StateChanged(metadata=metadata(), from_state="a", to_state="b"))

        assert [e.event_type for e in received] == ["OutcomeAmbiguous"]

    def test_off(self):
        emitter = EventEmitter()
        received = []
        handler = received.append
        emitter.on_all(handler)
        emitter.off(handler)

        emitter.emit(StateChanged(metadata=metadata(), from_state="a", to_state="b"))
        assert received == []

    def test_failing_handler_isolated(self):
        emitter = EventEmitter()
        received = []

        def broken(event):
            raise RuntimeError("handler bug")

        emitter.on_all(broken)
        emitter.on_all(received.append)

        errors = emitter.emit(StateChanged(metadata=metadata(), from_state="a", to_state="b"))

        assert len(errors) == 1
        assert len(received) == 1


@pytest.mark.asyncio
class TestOrchestrationEvents:
    """Events emitted during runs."""

    async def test_happy_path_sequence(self, orchestrator, recorder, intent):
        await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        await orchestrator.preprocess(intent)
        await orchestrator.confirm()

        assert recorder.types == [
            "StateChanged",
            "StateChanged",
            "EligibilityEstablished",
            "StateChanged",
            "StateChanged",
            "QuoteIssued",
            "StateChanged",
            "StateChanged",
            "TransactionConfirmed",
        ]
        states = [e.to_state for e in recorder.of_type(StateChanged)]
        assert states == [
            "checking_eligibility",
            "eligible",
            "preprocessing",
            "quoted",
            "confirming",
            "confirmed",
        ]

    async def test_causation_chain(self, orchestrator, recorder, intent):
        await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        await orchestrator.preprocess(intent)

        events = recorder.events
        assert events[0].metadata.causation_id is None
        for previous, event in zip(events, events[1:]):
            assert event.metadata.causation_id == previous.metadata.event_id
        assert {e.metadata.run_id for e in events} == {orchestrator.run_id}

    async def test_timestamps_from_clock(self, orchestrator, recorder, clock):
        await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        assert all(e.metadata.timestamp == clock.now for e in recorder.events)

    async def test_payloads_carry_no_account_ids(self, orchestrator, recorder, intent):
        await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        await orchestrator.preprocess(intent)
        await orchestrator.confirm()

        for event in recorder.events:
            payload = event.to_json()
            assert '"A1"' not in payload
            assert '"D1"' not in payload

    async def test_requote_emits_superseded(self, orchestrator, recorder, intent):
        await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        await orchestrator.preprocess(intent)
        first = orchestrator.control_flow_token
        await orchestrator.preprocess(intent.with_changes(amount=6000))

        [superseded] = recorder.of_type(QuoteSuperseded)
        assert superseded.control_flow_token == first.value
        assert superseded.reason == "requote"

    async def test_failure_event(self, orchestrator, processor, recorder):
        processor.fail_next("eligibility", ProcessorRejection(401, "UNAUTHORIZED"))
        with pytest.raises(AuthenticationRequired):
            await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")

        [failed] = recorder.of_type(TransactionFailed)
        assert failed.stage == "eligibility"
        assert failed.error_kind == "authentication_required"
        assert failed.error_code == "UNAUTHORIZED"

    async def test_ambiguity_and_reconciliation(self, orchestrator, processor, recorder, intent):
        await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        await orchestrator.preprocess(intent)
        processor.simulate_timeout("confirm", after_effect=True)
        with pytest.raises(AmbiguousOutcomeError):
            await orchestrator.confirm()
        await orchestrator.reconcile()

        [ambiguous] = recorder.of_type(OutcomeAmbiguous)
        [reconciled] = recorder.of_type(OutcomeReconciled)
        assert ambiguous.idempotency_token == reconciled.idempotency_token
        assert reconciled.status == "completed"
        assert reconciled.transaction_reference == "REF-001"

    async def test_broken_handler_does_not_break_run(self, orchestrator, emitter, intent):
        def broken(event):
            raise RuntimeError("handler bug")

        emitter.on_all(broken)

        await orchestrator.check_eligibility(PaymentRail.BILL_PAYMENT, "UTILITY")
        await orchestrator.preprocess(intent)
        confirmation = await orchestrator.confirm()
        assert confirmation.transaction_reference == "REF-001"
