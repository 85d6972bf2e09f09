"""
Tests for the upload file validator.
"""

import pytest

from app.utils.file_validators import FileValidationError, FileValidator
from conftest import make_image


@pytest.fixture
def validator():
    return FileValidator(max_file_size=10 * 1024 * 1024)


class TestMimeDetection:
    """Signature-based format detection."""

    def test_png(self, validator, png_bytes):
        assert validator.detect_mime_type(png_bytes) == "image/png"

    def test_jpeg(self, validator, jpeg_bytes):
        assert validator.detect_mime_type(jpeg_bytes) == "image/jpeg"

    def test_other(self, validator):
        assert validator.detect_mime_type(b"%PDF-1.7") == "application/octet-stream"


class TestFileSize:
    """Size limits."""

    def test_empty_file(self, validator):
        with pytest.raises(FileValidationError) as exc_info:
            validator.validate_file_size(b"", "empty.png")
        assert exc_info.value.error_code == "EMPTY_FILE"

    def test_too_large(self, png_bytes):
        validator = FileValidator(max_file_size=len(png_bytes) - 1)

        with pytest.raises(FileValidationError) as exc_info:
            validator.validate_file_size(png_bytes, "big.png")
        assert exc_info.value.error_code == "FILE_TOO_LARGE"
        assert "tamanho máximo" in exc_info.value.message

    def test_default_limit_is_ten_mib(self):
        assert FileValidator().max_file_size == 10 * 1024 * 1024


class TestValidateImage:
    """Full image validation."""

    def test_valid_png(self, validator, png_bytes):
        assert validator.validate_image(png_bytes, "xray.png") == "image/png"

    def test_valid_jpeg(self, validator, jpeg_bytes):
        assert validator.validate_image(jpeg_bytes, "xray.jpg") == "image/jpeg"

    def test_unsupported_format(self, validator):
        with pytest.raises(FileValidationError) as exc_info:
            validator.validate_image(b"GIF89a....", "anim.gif")

        assert exc_info.value.error_code == "INVALID_FORMAT"
        assert "JPEG ou PNG" in exc_info.value.message

    def test_truncated_png_message_is_fixed(self, validator, png_bytes):
        with pytest.raises(FileValidationError) as exc_info:
            validator.validate_image(png_bytes[:20], "broken.png")

        error = exc_info.value
        assert error.error_code == "CORRUPT_IMAGE"
        assert error.message == "Não foi possível ler a imagem. O arquivo pode estar corrompido."

    def test_too_small(self, validator):
        with pytest.raises(FileValidationError) as exc_info:
            validator.validate_image(make_image("PNG", (20, 80)), "tiny.png")

        assert exc_info.value.error_code == "IMAGE_TOO_SMALL"
