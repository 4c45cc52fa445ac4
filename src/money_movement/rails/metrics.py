"""Orchestration observability metrics.

OrchestrationMetrics is an event handler: register it on an emitter and
it counts what happens across every run sharing that emitter.

Usage:
    metrics = OrchestrationMetrics()
    emitter.on_all(metrics)

    # For Prometheus export
    print(metrics.to_prometheus())

    # For JSON export
    print(metrics.to_json())
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from money_movement.rails.events.types import (
    DomainEvent,
    EligibilityEstablished,
    OutcomeAmbiguous,
    OutcomeReconciled,
    QuoteIssued,
    QuoteSuperseded,
    StateChanged,
    TransactionConfirmed,
    TransactionFailed,
)
from money_movement.rails.state_machine import TransactionState


@dataclass
class Counter:
    """A counter metric (monotonically increasing)."""

    name: str
    value: int
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


@dataclass
class Gauge:
    """A gauge metric (can go up or down)."""

    name: str
    value: float | int
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


HELP = {
    "money_movement_runs_started_total": "Orchestration runs that began an eligibility check",
    "money_movement_state_transitions_total": "State transitions by target state",
    "money_movement_eligibility_established_total": "Eligibility checks with a usable source account",
    "money_movement_quotes_issued_total": "Quotes issued by rail",
    "money_movement_quotes_superseded_total": "Control-flow tokens discarded unconfirmed",
    "money_movement_transactions_confirmed_total": "Transactions confirmed",
    "money_movement_transactions_failed_total": "Runs failed by stage and error kind",
    "money_movement_outcomes_ambiguous_total": "Confirms with unknown outcome",
    "money_movement_outcomes_reconciled_total": "Ambiguous confirms resolved by status query",
    "money_movement_outcomes_unresolved": "Ambiguous confirms not yet reconciled (investigate if > 0)",
}


class OrchestrationMetrics:
    """Counts orchestration events into counters and gauges."""

    def __init__(self) -> None:
        self._counters: dict[tuple[str, tuple[tuple[str, str], ...]], Counter] = {}
        self.unresolved = Gauge(
            name="money_movement_outcomes_unresolved",
            value=0,
            help_text=HELP["money_movement_outcomes_unresolved"],
        )
        self.started_at = datetime.now(timezone.utc)

    def __call__(self, event: DomainEvent) -> None:
        """Handle a domain event."""
        if isinstance(event, StateChanged):
            self.inc("money_movement_state_transitions_total", to_state=event.to_state)
            if event.to_state == TransactionState.CHECKING_ELIGIBILITY.value:
                self.inc("money_movement_runs_started_total")
        elif isinstance(event, EligibilityEstablished):
            self.inc("money_movement_eligibility_established_total", rail=event.rail)
        elif isinstance(event, QuoteIssued):
            self.inc("money_movement_quotes_issued_total", rail=event.rail)
        elif isinstance(event, QuoteSuperseded):
            self.inc("money_movement_quotes_superseded_total", reason=event.reason)
        elif isinstance(event, TransactionConfirmed):
            self.inc("money_movement_transactions_confirmed_total")
        elif isinstance(event, TransactionFailed):
            self.inc(
                "money_movement_transactions_failed_total",
                stage=event.stage,
                kind=event.error_kind,
            )
        elif isinstance(event, OutcomeAmbiguous):
            self.inc("money_movement_outcomes_ambiguous_total")
            self.unresolved.value += 1
        elif isinstance(event, OutcomeReconciled):
            self.inc("money_movement_outcomes_reconciled_total", status=event.status)
            self.unresolved.value = max(0, self.unresolved.value - 1)

    def inc(self, name: str, **labels: str) -> None:
        key = (name, tuple(sorted(labels.items())))
        counter = self._counters.get(key)
        if counter is None:
            counter = Counter(name=name, value=0, labels=dict(labels), help_text=HELP.get(name, ""))
            self._counters[key] = counter
        counter.value += 1

    def value(self, name: str, **labels: str) -> int:
        """Current value of a counter (0 if never incremented).

        Without labels, sums every label combination of the counter.
        """
        if labels:
            counter = self._counters.get((name, tuple(sorted(labels.items()))))
            return counter.value if counter else 0
        return sum(c.value for (n, _), c in self._counters.items() if n == name)

    @property
    def counters(self) -> list[Counter]:
        return sorted(self._counters.values(), key=lambda c: (c.name, sorted(c.labels.items())))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "started_at": self.started_at.isoformat(),
            "counters": [_metric_to_dict(c) for c in self.counters],
            "gauges": [_metric_to_dict(self.unresolved)],
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def to_prometheus(self) -> str:
        """Convert to Prometheus text format."""
        lines: list[str] = []
        seen: set[str] = set()

        for metric in [*self.counters, self.unresolved]:
            if metric.name not in seen:
                seen.add(metric.name)
                if metric.help_text:
                    lines.append(f"# HELP {metric.name} {metric.help_text}")
                metric_type = "counter" if isinstance(metric, Counter) else "gauge"
                lines.append(f"# TYPE {metric.name} {metric_type}")

            labels = ""
            if metric.labels:
                label_parts = [f'{k}="{v}"' for k, v in sorted(metric.labels.items())]
                labels = "{" + ",".join(label_parts) + "}"
            lines.append(f"{metric.name}{labels} {metric.value}")

        return "\n".join(lines)


def _metric_to_dict(metric: Counter | Gauge) -> dict[str, Any]:
    return {
        "name": metric.name,
        "value": metric.value,
        "labels": metric.labels,
        "help": metric.help_text,
    }
