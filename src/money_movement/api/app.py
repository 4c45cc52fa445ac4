"""FastAPI application factory for the sandbox processor service."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from money_movement import __version__
from money_movement.api.routes import health_router, money_movement_router
from money_movement.config import get_settings
from money_movement.rails.errors import ProcessorRejection
from money_movement.rails.providers.sandbox import SandboxProcessor

logger = logging.getLogger(__name__)


def create_app(processor: SandboxProcessor | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        processor: Sandbox processor to serve. Defaults to one seeded with
            demo accounts and payees.
    """
    app = FastAPI(
        title="Money Movement Sandbox API",
        description="Sandbox payment processor: eligibility, preprocess, confirm",
        version=__version__,
    )
    app.state.processor = processor or SandboxProcessor.with_demo_data(
        quote_ttl_seconds=get_settings().quote_ttl_seconds,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ProcessorRejection)
    async def rejection_handler(request: Request, exc: ProcessorRejection) -> JSONResponse:
        """Send processor rejections as {code, details} bodies."""
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"code": "INVALID_REQUEST", "details": details},
        )

    @app.exception_handler(TimeoutError)
    async def timeout_handler(request: Request, exc: TimeoutError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            content={"code": "GATEWAY_TIMEOUT", "details": str(exc)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "code": "INTERNAL_ERROR",
                "details": "An unexpected error occurred",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(money_movement_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
