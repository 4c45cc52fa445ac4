"""Stateless stage services."""

from money_movement.rails.services.eligibility_gate import EligibilityGate
from money_movement.rails.services.stages import (
    ConfirmStage,
    PreprocessStage,
    ReconcileStage,
    RemoteStage,
)

__all__ = [
    "EligibilityGate",
    "PreprocessStage",
    "ConfirmStage",
    "ReconcileStage",
    "RemoteStage",
]
