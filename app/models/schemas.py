"""
Pydantic schemas for the X-ray analysis relay API.

Defines request/response models for all API endpoints.
"""

from datetime import datetime, timezone
from typing import Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, ConfigDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Analysis
# =============================================================================

class AnalyzeXrayRequest(BaseModel):
    """JSON body for the analysis endpoint."""

    image_base64: Optional[str] = Field(
        default=None,
        alias="imageBase64",
        description="Base64-encoded JPEG or PNG image"
    )
    mime_type: str = Field(
        default="image/jpeg",
        alias="mimeType",
        description="MIME type of the encoded image"
    )

    model_config = ConfigDict(populate_by_name=True)


class DiagnosisResponse(BaseModel):
    """Successful analysis."""

    diagnosis: str = Field(description="Radiology-style report text")
    confidence: float = Field(
        ge=0.0,
        le=100.0,
        description="Length-based heuristic score, not a model probability"
    )


# =============================================================================
# Exams
# =============================================================================

class ExamRecord(BaseModel):
    """
    Exam draft returned to the client for persistence.

    The relay does not store exams. Owner identity and the storage
    reference for the image bytes are filled in by the caller.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: Optional[str] = Field(default=None, description="Owner identity")
    image_name: str = Field(description="Original filename")
    image_url: Optional[str] = Field(
        default=None,
        description="Where the caller stored the image bytes"
    )
    diagnosis: str
    confidence: float = Field(ge=0.0, le=100.0)
    status: Literal["completed"] = Field(
        default="completed",
        description="Exams are only drafted after a successful analysis"
    )
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(from_attributes=True)


class UploadAnalysisResponse(DiagnosisResponse):
    """Analysis of an uploaded file, with the exam draft to persist."""

    exam: ExamRecord


# =============================================================================
# Health & Status
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy")
    version: str = Field(description="Application version")
    model_configured: bool = Field(
        description="Whether the upstream credential is present"
    )
    timestamp: datetime = Field(default_factory=_utcnow)


# =============================================================================
# Error Responses
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(description="Human-readable error message")
    error_code: str = Field(description="Machine-readable error category")
