"""
Main FastAPI application.

WHY: This is the entry point for the application. It configures logging,
middleware, routes, exception handlers and the background scheduler.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from client_portal.core.config import settings
from client_portal.core.exceptions import AppException
from client_portal.core.exception_handlers import (
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)
from client_portal.middleware import SecurityHeadersMiddleware, RequestContextMiddleware, RateLimitMiddleware
from client_portal.api import attachments, comments, inquiries, payments, proposals
from client_portal.services.scheduler import start_scheduler, shutdown_scheduler, get_scheduler_status


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Configure the root logger from LOG_LEVEL."""
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=LOG_FORMAT)


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    WHY: Factory pattern lets tests build an app with overridden
    dependencies.

    Returns:
        Configured FastAPI application instance
    """
    configure_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Client services portal: inquiries, proposals and payments",
        version=settings.VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # WHY: One error envelope for every failure; internals never leak
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Middleware runs in reverse order of registration: CORS is outermost,
    # request context is innermost so the rate limiter can use its IP rules.
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """
        Health check endpoint.

        WHY: Lets load balancers verify the process is up without
        authentication or a database round trip.
        """
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "scheduler": get_scheduler_status(),
        }

    @app.on_event("startup")
    async def startup_event():
        """Start the payment reminder scheduler when enabled."""
        if settings.SCHEDULER_ENABLED:
            await start_scheduler()
        logger.info(f"{settings.PROJECT_NAME} {settings.VERSION} started")

    @app.on_event("shutdown")
    async def shutdown_event():
        await shutdown_scheduler()

    app.include_router(inquiries.router, prefix=settings.API_V1_PREFIX)
    app.include_router(proposals.router, prefix=settings.API_V1_PREFIX)
    app.include_router(comments.router, prefix=settings.API_V1_PREFIX)
    app.include_router(attachments.router, prefix=settings.API_V1_PREFIX)
    app.include_router(payments.router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "client_portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
