"""
File validation utilities for the X-ray analysis relay.

Handles validation of uploaded X-ray images including:
- File size limits
- Format detection (JPEG or PNG only)
- Corruption detection
- Dimension sanity checks

Error messages are shown to the patient and are written in Portuguese.
"""

import io
from typing import Optional

from PIL import Image

from app.config import settings
from app.utils.logger import get_logger

logger = get_logger("file_validators")


class FileValidationError(Exception):
    """Raised when file validation fails."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class FileValidator:
    """
    Validates uploaded X-ray images before they are relayed.

    Ensures files are:
    - Not empty
    - Within size limits
    - JPEG or PNG by content signature
    - Not corrupt
    """

    ALLOWED_MIME_TYPES = {"image/jpeg", "image/png"}

    MIN_DIMENSION = 50
    MAX_DIMENSION = 10000

    def __init__(self, max_file_size: Optional[int] = None):
        self.max_file_size = max_file_size or settings.max_file_size_bytes

    def validate_file_size(self, file_content: bytes, filename: str) -> bool:
        """
        Check if file is within size limits.

        Raises:
            FileValidationError: If file is empty or exceeds the size limit
        """
        if not file_content:
            raise FileValidationError(
                f"O arquivo '{filename}' está vazio.",
                error_code="EMPTY_FILE"
            )
        if len(file_content) > self.max_file_size:
            max_mb = self.max_file_size / (1024 * 1024)
            raise FileValidationError(
                f"O arquivo '{filename}' excede o tamanho máximo de {max_mb:g}MB.",
                error_code="FILE_TOO_LARGE"
            )
        return True

    def detect_mime_type(self, file_content: bytes) -> str:
        """
        Detect the MIME type of file content using file signatures.

        Args:
            file_content: Raw file bytes

        Returns:
            Detected MIME type string
        """
        if file_content[:8] == b'\x89PNG\r\n\x1a\n':
            return 'image/png'
        if file_content[:3] == b'\xff\xd8\xff':
            return 'image/jpeg'
        return 'application/octet-stream'

    def validate_image(self, file_content: bytes, filename: str) -> str:
        """
        Validate an uploaded X-ray image.

        Args:
            file_content: Raw image bytes
            filename: Original filename

        Returns:
            Detected MIME type of the image

        Raises:
            FileValidationError: With the error code of the failed check
        """
        self.validate_file_size(file_content, filename)

        mime_type = self.detect_mime_type(file_content)
        if mime_type not in self.ALLOWED_MIME_TYPES:
            raise FileValidationError(
                "Formato inválido. Envie uma imagem JPEG ou PNG.",
                error_code="INVALID_FORMAT"
            )

        self._verify_image(file_content, filename)

        return mime_type

    def _verify_image(self, file_content: bytes, filename: str) -> None:
        """Open the image with Pillow and check integrity and dimensions."""
        try:
            img = Image.open(io.BytesIO(file_content))
            img.verify()

            # verify() leaves the image unusable, reopen for the size
            img = Image.open(io.BytesIO(file_content))
            width, height = img.size
        except Exception as e:
            # Pillow's message stays in the server log
            logger.warning("Image could not be decoded", filename=filename, error=str(e))
            raise FileValidationError(
                "Não foi possível ler a imagem. O arquivo pode estar corrompido.",
                error_code="CORRUPT_IMAGE"
            ) from e

        if width < self.MIN_DIMENSION or height < self.MIN_DIMENSION:
            raise FileValidationError(
                "Dimensões da imagem muito pequenas para análise.",
                error_code="IMAGE_TOO_SMALL"
            )

        if width > self.MAX_DIMENSION or height > self.MAX_DIMENSION:
            raise FileValidationError(
                "Dimensões da imagem muito grandes.",
                error_code="IMAGE_TOO_LARGE"
            )


# Singleton instance for easy access
file_validator = FileValidator()
