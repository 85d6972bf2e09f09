"""
API middleware for the X-ray analysis relay.

Provides:
- CORS preflight answers
- Rate limiting
- Request logging
- Request validation and last-resort error handling
"""

import time
from typing import Callable

from fastapi import Request, Response, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.core.relay import AnalysisError, MissingInputError, RelayInternalError
from app.utils.logger import get_logger

logger = get_logger("middleware")


# Rate limiter using client IP
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled
)


JSON_INVALID_ERROR_TYPES = {"json_invalid", "value_error.jsondecode"}


def preflight_headers() -> dict:
    """CORS headers sent on every preflight answer."""
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": ", ".join(settings.allowed_headers),
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    }


class PreflightMiddleware(BaseHTTPMiddleware):
    """
    Answers every OPTIONS request with an empty 200.

    Browsers may request headers beyond the advertised ones; the answer
    is the same whatever they ask for.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=preflight_headers())
        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for request/response logging.

    Logs:
    - Request method, path, client
    - Response status code
    - Processing time

    Request bodies are never logged, they carry patient images.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        start_time = time.time()

        method = request.method
        path = request.url.path
        client_ip = get_remote_address(request)

        logger.info(
            "Request received",
            method=method,
            path=path,
            client_ip=client_ip
        )

        try:
            response = await call_next(request)

            process_time = time.time() - start_time

            logger.info(
                "Request completed",
                method=method,
                path=path,
                status_code=response.status_code,
                process_time_ms=int(process_time * 1000)
            )

            response.headers["X-Process-Time"] = f"{process_time:.4f}"

            return response

        except Exception as e:
            process_time = time.time() - start_time

            logger.error(
                "Request failed",
                method=method,
                path=path,
                error=str(e),
                process_time_ms=int(process_time * 1000)
            )
            raise


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    Catches unhandled exceptions and returns a sanitized error response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        try:
            return await call_next(request)

        except HTTPException:
            raise

        except Exception as e:
            logger.error("Unhandled exception", error=str(e), exc_info=True)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Erro interno do servidor. Tente novamente.",
                    "error_code": "InternalError"
                }
            )


def setup_error_handlers(app) -> None:
    """Return request validation failures in the relay's error shape."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error_types = [err.get("type") for err in exc.errors()]

        # Unparsable body is an internal error, anything else means no usable image
        error: AnalysisError
        if JSON_INVALID_ERROR_TYPES.intersection(error_types):
            error, status_code = RelayInternalError(), 500
        else:
            error, status_code = MissingInputError(), 400

        logger.warning(
            "Request validation failed",
            path=request.url.path,
            error_types=error_types,
            error_code=error.category.value
        )

        return JSONResponse(
            status_code=status_code,
            content={"error": error.message, "error_code": error.category.value}
        )


def setup_rate_limiting(app) -> None:
    """Setup rate limiting on the application."""
    app.state.limiter = limiter

    @app.exception_handler(429)
    async def rate_limit_handler(request: Request, exc: Exception):
        return JSONResponse(
            status_code=429,
            content={
                "error": "Muitas requisições. Aguarde antes de tentar novamente.",
                "error_code": "RATE_LIMIT_EXCEEDED"
            }
        )
