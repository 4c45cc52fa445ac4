"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Header, Request

from money_movement.rails.errors import ProcessorRejection
from money_movement.rails.providers.sandbox import SandboxProcessor
from money_movement.rails.tokens import IdempotencyToken


async def get_access_token(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Extract the bearer access token. It also identifies the session."""
    if not authorization:
        raise ProcessorRejection(401, "UNAUTHORIZED", "Authorization header is required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise ProcessorRejection(401, "INVALID_ACCESS_TOKEN", "Expected a bearer token")
    return token.strip()


async def get_client_id(
    client_id: Annotated[str | None, Header(convert_underscores=False)] = None,
) -> str:
    if not client_id:
        raise ProcessorRejection(400, "MISSING_FIELD", "client_id header is required")
    return client_id


async def get_idempotency_token(
    uuid: Annotated[str | None, Header()] = None,
) -> IdempotencyToken:
    """Extract the idempotency token from the uuid header."""
    if not uuid:
        raise ProcessorRejection(400, "MISSING_FIELD", "uuid header is required")
    return IdempotencyToken(uuid)


async def get_processor(
    request: Request,
    access_token: Annotated[str, Depends(get_access_token)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> SandboxProcessor:
    """Sandbox processor acting for the caller's session."""
    processor: SandboxProcessor = request.app.state.processor
    return processor.for_session(access_token)


# Type aliases for cleaner dependency injection
Processor = Annotated[SandboxProcessor, Depends(get_processor)]
IdempotencyKey = Annotated[IdempotencyToken, Depends(get_idempotency_token)]
