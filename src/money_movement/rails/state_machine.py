"""Transaction run state machine with transition validation."""

from __future__ import annotations

from enum import Enum


class TransactionState(str, Enum):
    """Orchestration run states."""

    IDLE = "idle"
    CHECKING_ELIGIBILITY = "checking_eligibility"
    ELIGIBLE = "eligible"
    PREPROCESSING = "preprocessing"
    QUOTED = "quoted"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    AMBIGUOUS_OUTCOME = "ambiguous_outcome"
    FAILED = "failed"


class Stage(str, Enum):
    """Remote stages of a run."""

    ELIGIBILITY = "eligibility"
    PREPROCESS = "preprocess"
    CONFIRM = "confirm"
    RECONCILE = "reconcile"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TransactionStateMachine:
    """State machine for transaction run transitions.

    Allowed transitions:
    - idle → checking_eligibility
    - checking_eligibility → eligible | failed
    - eligible → preprocessing | failed
    - preprocessing → quoted | eligible (business rejection, cancel) | failed
    - quoted → preprocessing (re-quote) | confirming | eligible (expired) | failed
    - confirming → confirmed | eligible (token expired) | ambiguous_outcome | failed
    - ambiguous_outcome → confirmed | failed (only via reconciliation)
    - failed → idle (full restart)
    - confirmed is terminal
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        TransactionState.IDLE: [TransactionState.CHECKING_ELIGIBILITY],
        TransactionState.CHECKING_ELIGIBILITY: [
            TransactionState.ELIGIBLE,
            TransactionState.FAILED,
        ],
        TransactionState.ELIGIBLE: [
            TransactionState.PREPROCESSING,
            TransactionState.FAILED,
        ],
        TransactionState.PREPROCESSING: [
            TransactionState.QUOTED,
            TransactionState.ELIGIBLE,
            TransactionState.FAILED,
        ],
        TransactionState.QUOTED: [
            TransactionState.PREPROCESSING,
            TransactionState.CONFIRMING,
            TransactionState.ELIGIBLE,
            TransactionState.FAILED,
        ],
        TransactionState.CONFIRMING: [
            TransactionState.CONFIRMED,
            TransactionState.ELIGIBLE,
            TransactionState.AMBIGUOUS_OUTCOME,
            TransactionState.FAILED,
        ],
        TransactionState.AMBIGUOUS_OUTCOME: [
            TransactionState.CONFIRMED,
            TransactionState.FAILED,
        ],
        TransactionState.FAILED: [TransactionState.IDLE],
        TransactionState.CONFIRMED: [],  # Terminal state
    }

    # States from which a quote may be requested
    PREPROCESS_ALLOWED = {
        TransactionState.ELIGIBLE,
        TransactionState.QUOTED,
    }

    TERMINAL = {
        TransactionState.CONFIRMED,
        TransactionState.FAILED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(
        cls, from_status: str, to_status: str, reason: str | None = None
    ) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(_value(from_status), _value(to_status), reason)

    @classmethod
    def can_preprocess(cls, status: str) -> bool:
        """Check if a (re-)quote may be requested in this status."""
        return status in cls.PREPROCESS_ALLOWED

    @classmethod
    def is_requote(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition replaces an outstanding quote."""
        return from_status == TransactionState.QUOTED and to_status == TransactionState.PREPROCESSING

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status
