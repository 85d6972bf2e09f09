"""
API routes for the X-ray analysis relay.

The caller is already authenticated by the identity provider in front of
this service. Exams are persisted by the caller, not here.
"""

from typing import Dict, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse

from app.api.middleware import limiter
from app.config import settings
from app.core.relay import (
    AnalysisError,
    AnalysisRelay,
    AnalysisRequest,
    ErrorCategory,
    MissingInputError,
    RelayConfig,
    UpstreamError,
)
from app.models.schemas import (
    AnalyzeXrayRequest,
    DiagnosisResponse,
    ErrorResponse,
    ExamRecord,
    HealthResponse,
    UploadAnalysisResponse,
)
from app.utils.file_validators import FileValidationError, file_validator
from app.utils.logger import get_logger

logger = get_logger("routes")

router = APIRouter()


# HTTP status per failure category
ERROR_STATUS: Dict[ErrorCategory, int] = {
    ErrorCategory.MISSING_INPUT: 400,
    ErrorCategory.CONFIGURATION_ERROR: 500,
    ErrorCategory.UPSTREAM_ERROR: 502,
    ErrorCategory.EMPTY_RESPONSE: 500,
    ErrorCategory.INTERNAL_ERROR: 500,
}

RATE_LIMITED_STATUS = 503

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Image missing or invalid"},
    500: {"model": ErrorResponse, "description": "Configuration or internal failure"},
    502: {"model": ErrorResponse, "description": "Upstream model error"},
    503: {"model": ErrorResponse, "description": "Upstream usage limit reached"},
}


def get_relay() -> AnalysisRelay:
    """Build the relay from application settings."""
    return AnalysisRelay(RelayConfig.from_settings(settings))


def error_status(error: AnalysisError) -> int:
    """Map a relay failure to an HTTP status code."""
    if isinstance(error, UpstreamError) and error.rate_limited:
        return RATE_LIMITED_STATUS
    return ERROR_STATUS[error.category]


def error_response(error: AnalysisError) -> JSONResponse:
    """Serialize a relay failure. Only the sanitized message is exposed."""
    body = ErrorResponse(error=error.message, error_code=error.category.value)
    return JSONResponse(status_code=error_status(error), content=body.model_dump())


# =============================================================================
# Health Check
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check endpoint"
)
async def health_check():
    """
    Check if the service is healthy and running.

    Also reports whether the upstream credential is configured.
    """
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        model_configured=settings.model_configured
    )


# =============================================================================
# Analysis
# =============================================================================

@router.post(
    "/analyze-xray",
    response_model=DiagnosisResponse,
    tags=["Analysis"],
    summary="Analyze a base64-encoded chest X-ray",
    responses=ERROR_RESPONSES
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def analyze_xray(
    request: Request,
    body: Optional[AnalyzeXrayRequest] = None,
    relay: AnalysisRelay = Depends(get_relay)
):
    """
    Forward an encoded X-ray to the vision model and return its report.

    The confidence value is derived from the report length. It is a
    display heuristic, not a calibrated probability.

    **Important**: The report is AI-assisted and must be validated by a
    physician.
    """
    body = body or AnalyzeXrayRequest()

    try:
        result = await relay.analyze(
            AnalysisRequest(image_base64=body.image_base64, mime_type=body.mime_type)
        )
    except AnalysisError as e:
        logger.warning("X-ray analysis failed", category=e.category.value)
        return error_response(e)

    return DiagnosisResponse(
        diagnosis=result.diagnosis_text,
        confidence=result.confidence_score
    )


@router.post(
    "/upload-xray",
    response_model=UploadAnalysisResponse,
    tags=["Analysis"],
    summary="Upload and analyze a chest X-ray",
    responses=ERROR_RESPONSES
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def upload_xray(
    request: Request,
    file: UploadFile = File(..., description="Chest X-ray, JPEG or PNG"),
    relay: AnalysisRelay = Depends(get_relay)
):
    """
    Validate an uploaded X-ray, analyze it and return an exam draft.

    Supports:
    - PNG files
    - JPEG files

    Files larger than the configured limit are rejected before any call
    to the vision model. The returned exam is not stored by this service.
    """
    content = await file.read()
    filename = file.filename or "exam.jpg"

    if not content:
        return error_response(MissingInputError())

    try:
        mime_type = file_validator.validate_image(content, filename)
    except FileValidationError as e:
        logger.warning(
            "X-ray upload rejected",
            filename=filename,
            error_code=e.error_code
        )
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error=e.message, error_code=e.error_code).model_dump()
        )

    try:
        result = await relay.analyze(AnalysisRequest.from_bytes(content, mime_type))
    except AnalysisError as e:
        logger.warning(
            "X-ray analysis failed",
            filename=filename,
            category=e.category.value
        )
        return error_response(e)

    exam = ExamRecord(
        image_name=filename,
        diagnosis=result.diagnosis_text,
        confidence=result.confidence_score
    )

    logger.info(
        "X-ray uploaded and analyzed",
        exam_id=exam.id,
        filename=filename,
        confidence=exam.confidence
    )

    return UploadAnalysisResponse(
        diagnosis=result.diagnosis_text,
        confidence=result.confidence_score,
        exam=exam
    )
