"""Configuration management for money movement."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from money_movement.rails.config import OrchestratorConfig, ProcessorConfig


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    base_url: str
    client_id: str
    sandbox: bool
    quote_ttl_seconds: int
    request_timeout_seconds: float
    max_remote_attempts: int
    host: str
    port: int
    debug: bool

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            base_url=os.getenv("MONEY_MOVEMENT_BASE_URL", "http://localhost:8000"),
            client_id=os.getenv("MONEY_MOVEMENT_CLIENT_ID", "sandbox-client"),
            sandbox=os.getenv("MONEY_MOVEMENT_SANDBOX", "true").lower() == "true",
            quote_ttl_seconds=int(os.getenv("QUOTE_TTL_SECONDS", "300")),
            request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30")),
            max_remote_attempts=int(os.getenv("MAX_REMOTE_ATTEMPTS", "3")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
        )

    def processor_config(self) -> ProcessorConfig:
        return ProcessorConfig(
            base_url=self.base_url,
            client_id=self.client_id,
            sandbox=self.sandbox,
            timeout_seconds=self.request_timeout_seconds,
        )

    def orchestrator_config(self) -> OrchestratorConfig:
        return OrchestratorConfig(
            quote_ttl_seconds=self.quote_ttl_seconds,
            request_timeout_seconds=self.request_timeout_seconds,
            max_remote_attempts=self.max_remote_attempts,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
