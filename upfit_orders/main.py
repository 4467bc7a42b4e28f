"""
FastAPI application for the upfit order service.

Builds the app with CORS, request correlation, rate limiting, structured
error bodies, a health endpoint and the versioned order router.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from upfit_orders.api.v1.orders import router as orders_router
from upfit_orders.core.config import Settings, get_settings
from upfit_orders.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from upfit_orders.database.connection import dispose_engine
from upfit_orders.services.orders.repository import OrderRepositoryError

configure_logging()
logger = get_logger(__name__)


def _error_body(error: str, message: str, **extra) -> dict:
    return {"error": error, "message": message, "request_id": get_request_id(), **extra}


def create_app(settings: Settings) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Application settings

    Returns:
        Configured FastAPI instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Application starting",
            version=settings.app_version,
            order_storage=settings.order_storage,
            debug=settings.debug,
        )
        yield
        with log_performance(logger, "application_shutdown"):
            if settings.order_storage == "database":
                await dispose_engine()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Upfit order lifecycle and ETA tracking API",
        lifespan=lifespan,
        debug=settings.debug,
    )

    # Per-client budget; off under test so suites can hammer the API
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[f"{settings.rate_limit_per_minute}/minute"],
        enabled=not settings.is_test,
    )
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def correlate_requests(request: Request, call_next):
        """Bind a request id, time the request and echo the id back."""
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        try:
            with log_performance(
                logger,
                "http_request",
                method=request.method,
                path=request.url.path,
            ):
                response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.debug(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
            return response
        finally:
            clear_context()

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "loc": list(error.get("loc", ())),
                "msg": error.get("msg"),
                "type": error.get("type"),
            }
            for error in exc.errors()
        ]
        logger.warning("Request validation failed", path=request.url.path, errors=errors)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body("Validation Error", "Request validation failed", details=errors),
        )

    @app.exception_handler(OrderRepositoryError)
    async def handle_storage_error(
        request: Request, exc: OrderRepositoryError
    ) -> JSONResponse:
        logger.error("Order storage failure", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=_error_body("Storage Unavailable", "Order storage is unavailable"),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("Internal Server Error", "An unexpected error occurred"),
        )

    @app.get("/health", tags=["Health"], summary="Liveness probe")
    async def health_check() -> dict[str, str]:
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "order_storage": settings.order_storage,
        }

    app.include_router(orders_router, prefix=settings.api_v1_prefix)
    return app


app = create_app(get_settings())
