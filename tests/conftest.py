"""Pytest fixtures for money movement tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from money_movement.rails.config import OrchestratorConfig
from money_movement.rails.events import DomainEvent, EventEmitter
from money_movement.rails.orchestrator import TransactionOrchestrator
from money_movement.rails.providers.sandbox import SandboxProcessor
from money_movement.rails.types import PaymentRail, TransactionIntent


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class EventRecorder:
    """Event handler keeping every event it receives."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def __call__(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, event_type)]

    @property
    def types(self) -> list[str]:
        return [e.event_type for e in self.events]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def processor(clock: FixedClock) -> SandboxProcessor:
    """Sandbox with A1 (funded), A2 (empty) and payee D1 on every registered-payee rail."""
    return SandboxProcessor.with_demo_data(clock=clock)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def emitter(recorder: EventRecorder) -> EventEmitter:
    emitter = EventEmitter()
    emitter.on_all(recorder)
    return emitter


@pytest.fixture
def config() -> OrchestratorConfig:
    return OrchestratorConfig(retry_backoff_seconds=0)


@pytest.fixture
def orchestrator(
    processor: SandboxProcessor,
    clock: FixedClock,
    emitter: EventEmitter,
    config: OrchestratorConfig,
) -> TransactionOrchestrator:
    return TransactionOrchestrator(processor, config=config, clock=clock, emitter=emitter)


def build_intent(**overrides: Any) -> TransactionIntent:
    """Bill payment of 5000 cents from A1 to D1 unless overridden."""
    fields: dict[str, Any] = {
        "rail": PaymentRail.BILL_PAYMENT,
        "subtype": "UTILITY",
        "source_account_id": "A1",
        "destination_id": "D1",
        "amount": 5000,
        "currency": "USD",
        "remarks": "January electricity",
    }
    fields.update(overrides)
    return TransactionIntent(**fields)


@pytest.fixture
def make_intent() -> Callable[..., TransactionIntent]:
    return build_intent


@pytest.fixture
def intent() -> TransactionIntent:
    return build_intent()
