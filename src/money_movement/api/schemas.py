"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel

from money_movement.rails.providers.wire import (
    ConfirmRequest,
    ConfirmResponse,
    EligibilityResponse,
    ErrorBody,
    PreprocessRequest,
    PreprocessResponse,
    TransactionStatusResponse,
)

__all__ = [
    "ConfirmRequest",
    "ConfirmResponse",
    "EligibilityResponse",
    "ErrorBody",
    "PreprocessRequest",
    "PreprocessResponse",
    "TransactionStatusResponse",
    "HealthResponse",
]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    processor: str
    sandbox: bool
