"""Integration test fixtures: the sandbox API served in-process."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from money_movement.api.app import create_app
from money_movement.rails.config import ProcessorConfig
from money_movement.rails.providers.sandbox import SandboxProcessor

BASE_URL = "http://test"


@pytest.fixture
def app(processor: SandboxProcessor) -> FastAPI:
    return create_app(processor)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Raw HTTP client for the sandbox API."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as client:
        yield client


@pytest.fixture
def headers() -> dict[str, str]:
    """Headers of a valid session; add a uuid per request."""
    return {"Authorization": "Bearer session-alice", "client_id": "web-dashboard"}


@pytest.fixture
def processor_config() -> ProcessorConfig:
    return ProcessorConfig(base_url=BASE_URL, client_id="web-dashboard")
