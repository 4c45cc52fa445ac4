"""Orchestration and processor configuration objects.

Explicit configuration for one orchestration run. No defaults that move money.

Pattern:
    orchestrator = TransactionOrchestrator(
        processor=HttpPaymentProcessor(
            config=ProcessorConfig(base_url=..., client_id=..., sandbox=False),
            access_token=session.access_token,
        ),
        config=OrchestratorConfig(quote_ttl_seconds=120),
    )

Rules:
    1. No env vars here. Environment loading lives in money_movement.config.
    2. No globals. Each orchestrator instance has its own config.
    3. Immutable after creation (frozen dataclasses).
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse


@dataclass(frozen=True)
class OrchestratorConfig:
    """
    Orchestrator behavior configuration.

    Attributes:
        quote_ttl_seconds: How long a quote stays fresh locally. Confirm
            after this window returns the run to eligible without calling
            the processor. Default 300.
        request_timeout_seconds: Upper bound on any single stage call.
            Default 30.
        max_remote_attempts: Total attempts for eligibility and preprocess
            when the processor is unavailable. Confirm is never retried.
            Default 3.
        retry_backoff_seconds: Linear back-off step between attempts.
            Default 0.25.
        enforce_eligibility_hints: If True, reject intents whose source
            account or registered payee is missing from the eligibility
            result before calling preprocess. Default True.
    """

    quote_ttl_seconds: int = 300
    request_timeout_seconds: float = 30
    max_remote_attempts: int = 3
    retry_backoff_seconds: float = 0.25
    enforce_eligibility_hints: bool = True

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.quote_ttl_seconds < 1:
            raise ValueError("quote_ttl_seconds must be at least 1")
        if self.quote_ttl_seconds > 3600:
            raise ValueError("quote_ttl_seconds cannot exceed 3600 (1 hour)")
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        if self.max_remote_attempts < 1:
            raise ValueError("max_remote_attempts must be at least 1")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds cannot be negative")


@dataclass(frozen=True)
class ProcessorConfig:
    """
    Remote payment processor configuration.

    Attributes:
        base_url: Root URL of the money-movement API.
        client_id: Client identifier sent with every request.
        sandbox: If True, the processor is a test environment. Default True.
        timeout_seconds: HTTP timeout for the transport. Default 30.
    """

    base_url: str
    client_id: str
    sandbox: bool = True
    timeout_seconds: float = 30

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.base_url:
            raise ValueError("base_url is required")
        if urlparse(self.base_url).scheme not in ("http", "https"):
            raise ValueError("base_url must be an http(s) URL")
        if not self.client_id:
            raise ValueError("client_id is required")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


# =============================================================================
# Configuration Builders (Optional Convenience)
# =============================================================================


def create_sandbox_config(
    base_url: str = "http://localhost:8000",
    client_id: str = "sandbox-client",
) -> tuple[ProcessorConfig, OrchestratorConfig]:
    """
    Create a sandbox configuration for development and testing.

    Args:
        base_url: Sandbox processor URL
        client_id: Client identifier

    Returns:
        (ProcessorConfig, OrchestratorConfig) pair configured for sandbox use
    """
    return (
        ProcessorConfig(base_url=base_url, client_id=client_id, sandbox=True),
        OrchestratorConfig(),
    )


def validate_production_config(
    processor: ProcessorConfig,
    orchestrator: OrchestratorConfig,
) -> list[str]:
    """
    Validate that a configuration is safe for production.

    Returns a list of warnings/errors. Empty list = safe.
    """
    issues: list[str] = []

    if processor.sandbox:
        issues.append(f"WARNING: Sandbox processor enabled: {processor.base_url}")

    if urlparse(processor.base_url).scheme != "https":
        issues.append("CRITICAL: base_url is not https. Session tokens would travel in clear text.")

    if not orchestrator.enforce_eligibility_hints:
        issues.append("WARNING: enforce_eligibility_hints is False")

    if orchestrator.request_timeout_seconds > processor.timeout_seconds:
        issues.append(
            "WARNING: request_timeout_seconds exceeds the transport timeout; "
            "the transport will time out first"
        )

    return issues
