"""Payment rail transaction orchestration.

This package contains:
- Value types, tokens and the run state machine
- The error taxonomy and normalizer
- Stateless stage services (eligibility, preprocess, confirm)
- The transaction orchestrator
- Processor adapters (HTTP, in-memory sandbox)
- Domain events and metrics
"""

from money_movement.rails.config import (
    OrchestratorConfig,
    ProcessorConfig,
    create_sandbox_config,
    validate_production_config,
)
from money_movement.rails.errors import (
    AmbiguousOutcomeError,
    AuthenticationRequired,
    ConcurrentOperationInProgress,
    ErrorKind,
    ErrorNormalizer,
    ErrorOrigin,
    IneligibleParty,
    InsufficientFunds,
    ProcessorRejection,
    RemoteUnavailable,
    TokenAlreadyUsed,
    TokenExpired,
    TransactionError,
    ValidationError,
)
from money_movement.rails.metrics import OrchestrationMetrics
from money_movement.rails.orchestrator import FailureRecord, TransactionOrchestrator
from money_movement.rails.providers import (
    HttpPaymentProcessor,
    PaymentProcessor,
    PreprocessResult,
    SandboxProcessor,
)
from money_movement.rails.services import (
    ConfirmStage,
    EligibilityGate,
    PreprocessStage,
)
from money_movement.rails.state_machine import (
    InvalidTransitionError,
    Stage,
    TransactionState,
    TransactionStateMachine,
)
from money_movement.rails.tokens import (
    ControlFlowToken,
    IdempotencyToken,
    IdempotencyTokenProvider,
)
from money_movement.rails.types import (
    BalanceSnapshot,
    ConfirmationResult,
    Destination,
    EligibilityResult,
    Money,
    PaymentRail,
    Quote,
    SourceAccount,
    TransactionIntent,
    TransactionStatus,
    TransactionStatusCode,
)

__all__ = [
    # Config
    "OrchestratorConfig",
    "ProcessorConfig",
    "create_sandbox_config",
    "validate_production_config",
    # Errors
    "TransactionError",
    "ErrorKind",
    "ErrorOrigin",
    "ErrorNormalizer",
    "ProcessorRejection",
    "AuthenticationRequired",
    "ValidationError",
    "IneligibleParty",
    "InsufficientFunds",
    "TokenExpired",
    "TokenAlreadyUsed",
    "RemoteUnavailable",
    "ConcurrentOperationInProgress",
    "AmbiguousOutcomeError",
    "InvalidTransitionError",
    # Orchestration
    "TransactionOrchestrator",
    "FailureRecord",
    "TransactionState",
    "TransactionStateMachine",
    "Stage",
    "EligibilityGate",
    "PreprocessStage",
    "ConfirmStage",
    "OrchestrationMetrics",
    # Processors
    "PaymentProcessor",
    "PreprocessResult",
    "HttpPaymentProcessor",
    "SandboxProcessor",
    # Tokens
    "IdempotencyToken",
    "IdempotencyTokenProvider",
    "ControlFlowToken",
    # Types
    "PaymentRail",
    "Money",
    "TransactionIntent",
    "SourceAccount",
    "Destination",
    "EligibilityResult",
    "Quote",
    "BalanceSnapshot",
    "ConfirmationResult",
    "TransactionStatus",
    "TransactionStatusCode",
]
