"""
DiagnosIA X-ray Relay - FastAPI Application

Relays chest X-ray images to an external vision model and returns a
radiology-style report with a heuristic confidence score.

IMPORTANT: Reports are AI-assisted and must be validated by a physician.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.routes import router
from app.api.middleware import (
    PreflightMiddleware,
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    setup_error_handlers,
    setup_rate_limiting
)
from app.utils.logger import get_logger, configure_logging

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    configure_logging(
        log_level=settings.log_level,
        json_format=not settings.debug
    )

    logger.info(
        "Starting X-ray relay",
        version=settings.app_version,
        model=settings.openai_model,
        debug=settings.debug
    )

    if not settings.model_configured:
        # analysis requests will fail with ConfigurationError until this is set
        logger.warning("OPENAI_API_KEY not configured")

    yield

    logger.info("Shutting down X-ray relay")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    app = FastAPI(
        title=settings.app_name,
        description="""
## DiagnosIA X-ray Relay

Sends an uploaded chest X-ray to a hosted vision model and returns a
structured radiology-style report.

### ⚠️ Important Disclaimer

Reports are **AI-assisted** and must be validated by a physician. The
`confidence` field is a length-based display heuristic, not a model
probability.

### API Endpoints

| Endpoint | Method | Description |
|----------|--------|-------------|
| `/analyze-xray` | POST | Analyze a base64-encoded image |
| `/upload-xray` | POST | Upload, validate and analyze an image |
| `/health` | GET | Health check |
        """,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc" if settings.debug else None,
    )

    # Setup middleware (order matters - last added is outermost)

    app.add_middleware(ErrorHandlingMiddleware)

    app.add_middleware(RequestLoggingMiddleware)

    # CORS - any origin on actual requests, bearer auth travels in headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=settings.allowed_headers,
    )

    # Preflight (outermost) - empty 200 for every OPTIONS request
    app.add_middleware(PreflightMiddleware)

    setup_error_handlers(app)

    setup_rate_limiting(app)

    app.include_router(router, tags=["API"])

    return app


app = create_app()


# Run with: uvicorn app.main:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
