"""Error taxonomy and normalization for remote payment operations.

Processors fail in heterogeneous ways: error bodies with codes, bare HTTP
statuses, transport exceptions, timeouts. ErrorNormalizer folds all of them
into a small set of kinds that callers (and the orchestrator) handle
uniformly.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

import httpx

from money_movement.rails.state_machine import Stage


class ErrorKind(str, Enum):
    """Failure kinds surfaced to callers."""

    AUTHENTICATION_REQUIRED = "authentication_required"
    VALIDATION_ERROR = "validation_error"
    INELIGIBLE_PARTY = "ineligible_party"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_ALREADY_USED = "token_already_used"
    REMOTE_UNAVAILABLE = "remote_unavailable"
    CONCURRENT_OPERATION = "concurrent_operation_in_progress"
    AMBIGUOUS_OUTCOME = "ambiguous_outcome"


class ErrorOrigin(str, Enum):
    """Where the error originated."""

    CALLER = "caller"  # Bad input or misuse of the orchestrator
    PROCESSOR = "processor"  # Business-rule rejection by the processor
    TRANSPORT = "transport"  # Network, timeout, unavailable service


class TransactionError(Exception):
    """Base class for all normalized transaction errors."""

    kind: ErrorKind = ErrorKind.REMOTE_UNAVAILABLE
    origin: ErrorOrigin = ErrorOrigin.PROCESSOR

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        stage: Stage | None = None,
    ):
        self.message = message
        self.code = code
        self.stage = stage
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Whether the same stage may be retried with a new idempotency token."""
        return False

    def to_dict(self) -> dict[str, Any]:
        """Structured form for the presentation layer."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "stage": self.stage.value if self.stage else None,
            "origin": self.origin.value,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r}, stage={self.stage!r})"


class AuthenticationRequired(TransactionError):
    """No valid caller session."""

    kind = ErrorKind.AUTHENTICATION_REQUIRED
    origin = ErrorOrigin.CALLER


class ValidationError(TransactionError):
    """Malformed intent or request."""

    kind = ErrorKind.VALIDATION_ERROR
    origin = ErrorOrigin.CALLER

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        stage: Stage | None = None,
        errors: list[str] | None = None,
    ):
        super().__init__(message, code=code, stage=stage)
        self.errors = errors or [message]

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = list(self.errors)
        return data


class IneligibleParty(TransactionError):
    """Source account or destination rejected."""

    kind = ErrorKind.INELIGIBLE_PARTY


class InsufficientFunds(TransactionError):
    """Source account cannot cover amount plus fees."""

    kind = ErrorKind.INSUFFICIENT_FUNDS


class TokenExpired(TransactionError):
    """Quote aged out or was superseded; preprocess again."""

    kind = ErrorKind.TOKEN_EXPIRED


class TokenAlreadyUsed(TransactionError):
    """Control-flow token was already confirmed. Logic error, never retried."""

    kind = ErrorKind.TOKEN_ALREADY_USED


class RemoteUnavailable(TransactionError):
    """Network failure, timeout or unavailable processor."""

    kind = ErrorKind.REMOTE_UNAVAILABLE
    origin = ErrorOrigin.TRANSPORT

    @property
    def retryable(self) -> bool:
        # Only stages without irreversible effects can be retried
        return self.stage in (Stage.ELIGIBILITY, Stage.PREPROCESS, Stage.RECONCILE, None)


class ConcurrentOperationInProgress(TransactionError):
    """A remote call for this run is already in flight."""

    kind = ErrorKind.CONCURRENT_OPERATION
    origin = ErrorOrigin.CALLER


class AmbiguousOutcomeError(TransactionError):
    """Confirm outcome unknown; reconcile before doing anything else.

    Not a failure: the transaction may well have executed.
    """

    kind = ErrorKind.AMBIGUOUS_OUTCOME
    origin = ErrorOrigin.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        stage: Stage | None = Stage.CONFIRM,
        cause: TransactionError | None = None,
    ):
        super().__init__(message, code=code, stage=stage)
        self.cause = cause


ERROR_CLASSES: dict[ErrorKind, type[TransactionError]] = {
    ErrorKind.AUTHENTICATION_REQUIRED: AuthenticationRequired,
    ErrorKind.VALIDATION_ERROR: ValidationError,
    ErrorKind.INELIGIBLE_PARTY: IneligibleParty,
    ErrorKind.INSUFFICIENT_FUNDS: InsufficientFunds,
    ErrorKind.TOKEN_EXPIRED: TokenExpired,
    ErrorKind.TOKEN_ALREADY_USED: TokenAlreadyUsed,
    ErrorKind.REMOTE_UNAVAILABLE: RemoteUnavailable,
    ErrorKind.CONCURRENT_OPERATION: ConcurrentOperationInProgress,
    ErrorKind.AMBIGUOUS_OUTCOME: AmbiguousOutcomeError,
}


class ProcessorRejection(Exception):
    """Raw error reported by a processor: HTTP status plus {code, details} body."""

    def __init__(self, status_code: int, code: str | None, details: str = ""):
        self.status_code = status_code
        self.code = code
        self.details = details
        super().__init__(f"{status_code} {code or 'UNKNOWN'}: {details}")

    def to_body(self) -> dict[str, Any]:
        return {"code": self.code, "details": self.details}


# Processor error codes → kinds. Unknown codes fall back to the HTTP status.
ERROR_CODES: dict[str, ErrorKind] = {
    # Session
    "UNAUTHORIZED": ErrorKind.AUTHENTICATION_REQUIRED,
    "INVALID_ACCESS_TOKEN": ErrorKind.AUTHENTICATION_REQUIRED,
    "SESSION_EXPIRED": ErrorKind.AUTHENTICATION_REQUIRED,
    # Request shape
    "INVALID_REQUEST": ErrorKind.VALIDATION_ERROR,
    "INVALID_AMOUNT": ErrorKind.VALIDATION_ERROR,
    "MISSING_FIELD": ErrorKind.VALIDATION_ERROR,
    "UNSUPPORTED_SUBTYPE": ErrorKind.VALIDATION_ERROR,
    "CURRENCY_MISMATCH": ErrorKind.VALIDATION_ERROR,
    "CONTROL_FLOW_NOT_FOUND": ErrorKind.VALIDATION_ERROR,
    # Parties
    "INELIGIBLE_SOURCE_ACCOUNT": ErrorKind.INELIGIBLE_PARTY,
    "INELIGIBLE_PAYEE": ErrorKind.INELIGIBLE_PARTY,
    "PAYEE_NOT_FOUND": ErrorKind.INELIGIBLE_PARTY,
    "LIMIT_EXCEEDED": ErrorKind.INELIGIBLE_PARTY,
    # Funds
    "INSUFFICIENT_FUNDS": ErrorKind.INSUFFICIENT_FUNDS,
    # Control-flow tokens
    "CONTROL_FLOW_EXPIRED": ErrorKind.TOKEN_EXPIRED,
    "CONTROL_FLOW_SUPERSEDED": ErrorKind.TOKEN_EXPIRED,
    "CONTROL_FLOW_ALREADY_USED": ErrorKind.TOKEN_ALREADY_USED,
    # Availability
    "SERVICE_UNAVAILABLE": ErrorKind.REMOTE_UNAVAILABLE,
    "GATEWAY_TIMEOUT": ErrorKind.REMOTE_UNAVAILABLE,
    "MALFORMED_RESPONSE": ErrorKind.REMOTE_UNAVAILABLE,
}

_STATUS_KINDS: dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION_ERROR,
    401: ErrorKind.AUTHENTICATION_REQUIRED,
    403: ErrorKind.AUTHENTICATION_REQUIRED,
    404: ErrorKind.VALIDATION_ERROR,
    409: ErrorKind.TOKEN_ALREADY_USED,
    410: ErrorKind.TOKEN_EXPIRED,
    422: ErrorKind.VALIDATION_ERROR,
}

_TRANSPORT_ERRORS = (
    httpx.RequestError,
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
)


class ErrorNormalizer:
    """Maps remote failures onto the error taxonomy.

    Anything not recognized as a remote failure (programming errors,
    cancellation) is not normalized; callers let it propagate.
    """

    def __init__(self, codes: dict[str, ErrorKind] | None = None):
        self.codes = dict(ERROR_CODES)
        if codes:
            self.codes.update(codes)

    def is_remote_failure(self, exc: BaseException) -> bool:
        return isinstance(exc, (TransactionError, ProcessorRejection, *_TRANSPORT_ERRORS))

    def classify_rejection(self, rejection: ProcessorRejection) -> ErrorKind:
        """Kind for a processor rejection: code table first, then HTTP status."""
        if rejection.code:
            kind = self.codes.get(rejection.code.upper())
            if kind is not None:
                return kind
        # Anything unrecognized is treated as unavailability, which keeps
        # confirm failures ambiguous rather than assumed-not-executed.
        return _STATUS_KINDS.get(rejection.status_code, ErrorKind.REMOTE_UNAVAILABLE)

    def normalize(self, exc: BaseException, stage: Stage | None = None) -> TransactionError:
        """Convert a remote failure into a TransactionError for the given stage.

        Raises TypeError for exceptions that are not remote failures.
        """
        if isinstance(exc, TransactionError):
            if exc.stage is None:
                exc.stage = stage
            return exc

        if isinstance(exc, ProcessorRejection):
            kind = self.classify_rejection(exc)
            message = exc.details or f"Processor rejected the request ({exc.status_code})"
            return ERROR_CLASSES[kind](message, code=exc.code, stage=stage)

        if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
            return RemoteUnavailable(
                f"Timed out waiting for the processor: {exc}".rstrip(": "),
                code="TIMEOUT",
                stage=stage,
            )

        if isinstance(exc, httpx.DecodingError):
            return RemoteUnavailable(
                f"Could not decode the processor response: {exc}".rstrip(": "),
                code="MALFORMED_RESPONSE",
                stage=stage,
            )

        if isinstance(exc, (httpx.RequestError, ConnectionError)):
            return RemoteUnavailable(
                f"Could not reach the processor: {exc}".rstrip(": "),
                code="TRANSPORT_ERROR",
                stage=stage,
            )

        raise TypeError(f"Not a remote failure: {exc!r}")
