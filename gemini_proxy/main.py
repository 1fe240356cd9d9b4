"""
Gemini Proxy Application Entry Point

FastAPI application main entry, including router registration and application configuration.
"""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from gemini_proxy import __version__
from gemini_proxy.api.deps import close_gemini_client
from gemini_proxy.api.proxy import openai_router
from gemini_proxy.common.errors import (
    AppError,
    NotFoundError,
    UpstreamHttpError,
    ValidationError,
)
from gemini_proxy.config import get_settings
from gemini_proxy.logging_config import setup_logging
from gemini_proxy.middleware.cors import CORS_HEADERS, PermissiveCORSMiddleware

logger = logging.getLogger(__name__)

# Initialize logging configuration
setup_logging()


# Application Lifecycle Management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application Lifecycle Management

    Releases the shared upstream connection pool on shutdown.
    """
    yield
    await close_gemini_client()


settings = get_settings()

app = FastAPI(
    title=settings.APP_NAME,
    description="OpenAI-compatible proxy for the Google Gemini API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(PermissiveCORSMiddleware)


def _error_response(exc: AppError) -> Response:
    if isinstance(exc, UpstreamHttpError):
        # Relay the upstream failure untouched.
        return Response(
            content=exc.body,
            status_code=exc.status_code,
            media_type=exc.content_type,
            headers=CORS_HEADERS,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(include_details=get_settings().DEBUG),
        headers=CORS_HEADERS,
    )


# Global Exception Handler
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """
    Handle application custom exceptions

    In production mode, error details are hidden to prevent information leakage.
    """
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Render FastAPI parameter validation failures as 400 errors."""
    error = ValidationError(
        message="Invalid request",
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return _error_response(error)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render routing errors (404, 405) in the common error envelope."""
    if exc.status_code == 404:
        return _error_response(NotFoundError())
    error = AppError(
        message=str(exc.detail),
        error_type="invalid_request_error",
        code="http_error",
        status_code=exc.status_code,
    )
    return _error_response(error)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle uncaught exceptions

    In production mode, stack traces and error details are logged but not returned to clients.
    """
    settings = get_settings()
    # Log the full error for debugging
    logger.error(
        "Uncaught exception: %s\nPath: %s\nTraceback:\n%s",
        str(exc),
        request.url.path,
        traceback.format_exc(),
    )

    # In debug mode, return detailed error information
    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "message": str(exc),
                    "type": type(exc).__name__,
                    "code": "internal_error",
                    "traceback": traceback.format_exc().split("\n"),
                }
            },
            headers=CORS_HEADERS,
        )

    # In production, return generic error message
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "message": "Internal server error",
                "type": "internal_error",
                "code": "internal_error",
            }
        },
        headers=CORS_HEADERS,
    )


# Health Check Endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health Check

    Used for service liveness checks.
    """
    return {"status": "healthy"}


# Register Proxy Routers
app.include_router(openai_router)


def run() -> None:
    import uvicorn

    uvicorn.run(
        "gemini_proxy.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
