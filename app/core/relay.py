"""
X-ray analysis relay.

Forwards a single chest X-ray to an external multimodal chat-completion
service and normalizes its answer into a diagnosis text plus a confidence
score, or into a categorized, sanitized error.

The relay is stateless: it owns no storage and performs no writes.
Persisting the result as an exam record is the caller's job.

IMPORTANT: The generated text is AI-assisted and must be validated by a
physician. The confidence score is a length heuristic, not a calibrated
model probability.
"""

import base64
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import httpx

from app.config import Settings
from app.core.prompts import build_messages
from app.utils.logger import get_logger

logger = get_logger("relay")


# Heuristic confidence band
CONFIDENCE_FLOOR = 75.0
CONFIDENCE_CEILING = 95.0
CONFIDENCE_BASE = 80.0
CHARS_PER_CONFIDENCE_POINT = 50

# Upstream error details kept in server logs
MAX_LOGGED_ERROR_CHARS = 500


# =============================================================================
# Errors
# =============================================================================

class ErrorCategory(str, Enum):
    """Failure categories exposed to callers."""
    MISSING_INPUT = "MissingInput"
    CONFIGURATION_ERROR = "ConfigurationError"
    UPSTREAM_ERROR = "UpstreamError"
    EMPTY_RESPONSE = "EmptyResponse"
    INTERNAL_ERROR = "InternalError"


class AnalysisError(Exception):
    """
    Base class for relay failures.

    The message is always safe to show to the end user. Upstream bodies,
    credentials and stack traces stay in the server logs.
    """

    category: ErrorCategory = ErrorCategory.INTERNAL_ERROR
    default_message: str = "Erro interno do servidor. Tente novamente."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class MissingInputError(AnalysisError):
    """Raised when no image payload was provided."""
    category = ErrorCategory.MISSING_INPUT
    default_message = "Imagem é obrigatória"


class ConfigurationError(AnalysisError):
    """Raised when the upstream credential is not configured."""
    category = ErrorCategory.CONFIGURATION_ERROR
    default_message = "Configuração do servidor incorreta"


class UpstreamError(AnalysisError):
    """Raised when the upstream service answers with a non-success status."""
    category = ErrorCategory.UPSTREAM_ERROR
    default_message = "Falha na comunicação com o serviço de análise de imagens."
    rate_limited_message = (
        "Limite de uso da API de análise excedido. Tente novamente mais tarde."
    )

    def __init__(self, status_code: int, rate_limited: bool = False):
        self.status_code = status_code
        self.rate_limited = rate_limited
        super().__init__(
            self.rate_limited_message if rate_limited else self.default_message
        )


class EmptyResponseError(AnalysisError):
    """Raised when the upstream answered successfully but without text."""
    category = ErrorCategory.EMPTY_RESPONSE
    default_message = "Não foi possível gerar o diagnóstico"


class RelayInternalError(AnalysisError):
    """Raised for transport failures, timeouts and malformed bodies."""
    category = ErrorCategory.INTERNAL_ERROR


# =============================================================================
# Request / Result
# =============================================================================

@dataclass(frozen=True)
class AnalysisRequest:
    """Image to analyze, already base64-encoded."""

    image_base64: Optional[str]
    mime_type: str = "image/jpeg"

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str = "image/jpeg") -> "AnalysisRequest":
        """Build a request from raw image bytes."""
        encoded = base64.b64encode(data).decode("ascii") if data else None
        return cls(image_base64=encoded, mime_type=mime_type)


@dataclass(frozen=True)
class AnalysisResult:
    """Normalized successful analysis."""

    diagnosis_text: str
    confidence_score: float


class Milestone(str, Enum):
    """Progress points reported to an optional observer."""
    VALIDATED = "validated"
    SENT = "sent"
    RECEIVED = "received"
    PARSED = "parsed"


ProgressCallback = Callable[[Milestone], None]


@dataclass(frozen=True)
class RelayConfig:
    """Upstream settings injected into the relay."""

    api_key: Optional[str]
    model: str = "gpt-4.1-2025-04-14"
    base_url: str = "https://api.openai.com/v1"
    max_tokens: int = 1000
    temperature: float = 0.2
    timeout_seconds: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RelayConfig":
        """Build relay configuration from application settings."""
        return cls(
            api_key=settings.openai_api_key or None,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            max_tokens=settings.openai_max_tokens,
            temperature=settings.openai_temperature,
            timeout_seconds=settings.openai_timeout_seconds,
        )

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"


# =============================================================================
# Confidence heuristic
# =============================================================================

def confidence_score(diagnosis_text: str) -> float:
    """
    Derive a display confidence from the generated report.

    This grows with the report length and is clamped to a fixed band. It
    does NOT measure model certainty and must not be presented as a
    statistical confidence.

    Args:
        diagnosis_text: Report text returned by the upstream model

    Returns:
        Score in [CONFIDENCE_FLOOR, CONFIDENCE_CEILING], one decimal place
    """
    raw = CONFIDENCE_BASE + len(diagnosis_text) / CHARS_PER_CONFIDENCE_POINT
    clamped = min(CONFIDENCE_CEILING, max(CONFIDENCE_FLOOR, raw))
    # round half up, so 80.25 -> 80.3
    return math.floor(clamped * 10 + 0.5) / 10


# =============================================================================
# Relay
# =============================================================================

class AnalysisRelay:
    """
    Stateless relay between the client and the upstream vision model.

    Each call performs at most one outbound request and either returns an
    AnalysisResult or raises an AnalysisError subclass. Nothing is retried.
    """

    def __init__(
        self,
        config: RelayConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the relay.

        Args:
            config: Upstream configuration
            transport: Optional httpx transport (tests inject a mock here)
        """
        self.config = config
        self._transport = transport

    async def analyze(
        self,
        request: AnalysisRequest,
        on_progress: Optional[ProgressCallback] = None
    ) -> AnalysisResult:
        """
        Analyze a chest X-ray.

        Args:
            request: Encoded image and its MIME type
            on_progress: Optional observer called at each milestone

        Returns:
            AnalysisResult with the diagnosis text and confidence score

        Raises:
            MissingInputError: No image payload
            ConfigurationError: Upstream credential not configured
            UpstreamError: Upstream answered with a non-success status
            EmptyResponseError: Upstream answered without generated text
            RelayInternalError: Any other failure during the call
        """
        if not request.image_base64 or not request.image_base64.strip():
            logger.warning("Analysis rejected, image not provided")
            raise MissingInputError()

        if not self.config.api_key or not self.config.api_key.strip():
            logger.error("Upstream credential not configured")
            raise ConfigurationError()

        self._notify(on_progress, Milestone.VALIDATED)

        payload = self._build_payload(request)

        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                transport=self._transport
            ) as client:
                logger.info(
                    "Sending image to upstream",
                    model=self.config.model,
                    mime_type=request.mime_type,
                    payload_chars=len(request.image_base64)
                )
                self._notify(on_progress, Milestone.SENT)
                response = await client.post(
                    self.config.completions_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.config.api_key}"}
                )

            logger.info("Upstream responded", status_code=response.status_code)
            self._notify(on_progress, Milestone.RECEIVED)

            if not response.is_success:
                raise self._upstream_error(response)

            diagnosis = self._extract_diagnosis(response)

        except AnalysisError:
            raise
        except Exception as e:
            logger.error(
                "Upstream call failed",
                error_type=type(e).__name__,
                exc_info=True
            )
            raise RelayInternalError() from e

        self._notify(on_progress, Milestone.PARSED)

        result = AnalysisResult(
            diagnosis_text=diagnosis,
            confidence_score=confidence_score(diagnosis)
        )

        logger.info(
            "Analysis completed",
            diagnosis_chars=len(diagnosis),
            confidence=result.confidence_score
        )

        return result

    def _build_payload(self, request: AnalysisRequest) -> Dict[str, Any]:
        """Build the chat-completions request body."""
        return {
            "model": self.config.model,
            "messages": build_messages(request.image_base64, request.mime_type),
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }

    def _upstream_error(self, response: httpx.Response) -> UpstreamError:
        """Classify a non-success upstream response."""
        detail = ""
        try:
            body = response.json()
        except ValueError:
            body = None
            detail = response.text

        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                detail = str(error.get("message") or error.get("code") or "")
            elif error:
                detail = str(error)

        rate_limited = response.status_code == 429 or "quota" in detail.lower()

        logger.error(
            "Upstream returned an error",
            status_code=response.status_code,
            rate_limited=rate_limited,
            detail=detail[:MAX_LOGGED_ERROR_CHARS]
        )

        return UpstreamError(response.status_code, rate_limited=rate_limited)

    def _extract_diagnosis(self, response: httpx.Response) -> str:
        """
        Pull the generated text out of a chat-completions body.

        A malformed JSON body raises ValueError and ends up as an internal
        error. A well-formed body without text is an empty response.
        """
        data = response.json()

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None

        if not isinstance(content, str) or not content.strip():
            logger.error("Diagnosis not found in upstream response")
            raise EmptyResponseError()

        return content

    def _notify(
        self,
        on_progress: Optional[ProgressCallback],
        milestone: Milestone
    ) -> None:
        """Report a milestone to the observer, if any."""
        if on_progress is None:
            return
        try:
            on_progress(milestone)
        except Exception as e:
            logger.warning(
                "Progress observer failed",
                milestone=milestone.value,
                error=str(e)
            )
