"""Domain events for transaction orchestration."""

from money_movement.rails.events.emitter import EventEmitter, EventHandler
from money_movement.rails.events.types import (
    DomainEvent,
    EligibilityEstablished,
    EventCategory,
    EventMetadata,
    OutcomeAmbiguous,
    OutcomeReconciled,
    QuoteIssued,
    QuoteSuperseded,
    StateChanged,
    TransactionConfirmed,
    TransactionFailed,
)

__all__ = [
    # Base types
    "DomainEvent",
    "EventMetadata",
    "EventCategory",
    # Emitter
    "EventEmitter",
    "EventHandler",
    # Lifecycle
    "StateChanged",
    # Eligibility
    "EligibilityEstablished",
    # Quote
    "QuoteIssued",
    "QuoteSuperseded",
    # Execution
    "TransactionConfirmed",
    "TransactionFailed",
    "OutcomeAmbiguous",
    "OutcomeReconciled",
]
