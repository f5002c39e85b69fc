"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from cashless_refunds.api.dependencies import get_request_id
from cashless_refunds.api.errors import error_response
from cashless_refunds.api.middleware import RequestIDMiddleware, MetricsMiddleware
from cashless_refunds.api.v1 import refunds
from cashless_refunds.domain.exceptions import ErrorCode
from cashless_refunds.infrastructure.observability.logging import setup_logging
from cashless_refunds.config import settings

# Setup structured logging
setup_logging(settings.log_level)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return error_response(400, ErrorCode.INVALID_REQUEST, "Invalid request body", get_request_id(request), errors)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.error(f"Unhandled error: {exc}", extra={"request_id": get_request_id(request)}, exc_info=exc)
    return error_response(500, ErrorCode.SERVER_ERROR, "Internal server error", get_request_id(request))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = ErrorCode.SERVER_ERROR if exc.status_code >= 500 else ErrorCode.INVALID_REQUEST
    return error_response(exc.status_code, code, str(exc.detail), get_request_id(request))


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Cashless Refunds",
        description="Festival cashless refund export service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(refunds.router, prefix="/v1", tags=["refunds"])

    return app


app = create_app()
