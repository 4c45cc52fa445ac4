"""Payment processor adapters."""

from money_movement.rails.providers.base import (
    PaymentProcessor,
    PreprocessResult,
)
from money_movement.rails.providers.http import HttpPaymentProcessor
from money_movement.rails.providers.sandbox import SandboxProcessor

__all__ = [
    "PaymentProcessor",
    "PreprocessResult",
    "HttpPaymentProcessor",
    "SandboxProcessor",
]
