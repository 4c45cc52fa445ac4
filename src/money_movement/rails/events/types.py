"""Domain event types for transaction orchestration.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata (run_id ties together one orchestration run)
- Serializable to dict/JSON

Payloads carry tokens and rails, never account ids.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    LIFECYCLE = "lifecycle"
    ELIGIBILITY = "eligibility"
    QUOTE = "quote"
    EXECUTION = "execution"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    run_id: UUID  # One orchestration run
    causation_id: UUID | None  # Event that caused this one
    source_service: str
    version: int = 1  # Schema version for evolution

    @classmethod
    def create(
        cls,
        run_id: UUID,
        causation_id: UUID | None = None,
        source_service: str = "money_movement",
        timestamp: datetime | None = None,
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=timestamp or datetime.now(timezone.utc),
            run_id=run_id,
            causation_id=causation_id,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize_dict(asdict(self))
        data["event_type"] = self.event_type
        data["category"] = self.category.value
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Lifecycle Events
# =============================================================================


@dataclass(frozen=True)
class StateChanged(DomainEvent):
    """The run moved between states."""

    from_state: str
    to_state: str
    reason: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.LIFECYCLE


# =============================================================================
# Eligibility Events
# =============================================================================


@dataclass(frozen=True)
class EligibilityEstablished(DomainEvent):
    """Eligibility succeeded with at least one usable source account."""

    rail: str
    subtype: str
    source_account_count: int
    destination_count: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.ELIGIBILITY


# =============================================================================
# Quote Events
# =============================================================================


@dataclass(frozen=True)
class QuoteIssued(DomainEvent):
    """Preprocess returned a quote and control-flow token."""

    control_flow_token: str
    rail: str
    debit_currency: str
    credit_currency: str
    has_fee: bool
    fx_rate: Decimal | None
    expires_at: datetime

    @property
    def category(self) -> EventCategory:
        return EventCategory.QUOTE


@dataclass(frozen=True)
class QuoteSuperseded(DomainEvent):
    """An outstanding control-flow token was discarded, never to be confirmed."""

    control_flow_token: str
    reason: str  # requote, expired, cancelled, rejected

    @property
    def category(self) -> EventCategory:
        return EventCategory.QUOTE


# =============================================================================
# Execution Events
# =============================================================================


@dataclass(frozen=True)
class TransactionConfirmed(DomainEvent):
    """Confirm succeeded. Money moved."""

    control_flow_token: str
    transaction_reference: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXECUTION


@dataclass(frozen=True)
class TransactionFailed(DomainEvent):
    """The run failed at a stage."""

    stage: str
    error_kind: str
    error_code: str | None
    message: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXECUTION


@dataclass(frozen=True)
class OutcomeAmbiguous(DomainEvent):
    """Confirm outcome unknown; reconciliation required."""

    control_flow_token: str
    idempotency_token: str
    cause: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXECUTION


@dataclass(frozen=True)
class OutcomeReconciled(DomainEvent):
    """A status query resolved an ambiguous confirm."""

    control_flow_token: str
    idempotency_token: str
    status: str  # completed, not_found, rejected
    transaction_reference: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXECUTION
