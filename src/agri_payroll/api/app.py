"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agri_payroll.api.routes import (
    deduction_rules_router,
    health_router,
    pay_calculations_router,
    work_orders_router,
)
from agri_payroll.database import dispose_db, init_db
from agri_payroll.errors import ErrorKind, PayrollError

logger = logging.getLogger(__name__)

# Failure kind -> HTTP status
ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.CONFIGURATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.CONCURRENCY: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Agri Payroll API",
        description="Work-order driven monthly payroll",
        version="0.1.0",
        lifespan=lifespan,
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
    @app.exception_handler(PayrollError)
    async def payroll_error_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map typed payroll failures onto HTTP status codes."""
        return JSONResponse(
            status_code=ERROR_STATUS.get(exc.kind, status.HTTP_400_BAD_REQUEST),
            content={
                "detail": exc.message,
                "code": exc.kind.value.upper(),
                "context": exc.to_dict()["details"],
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(pay_calculations_router, prefix="/api/v1")
    app.include_router(work_orders_router, prefix="/api/v1")
    app.include_router(deduction_rules_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
