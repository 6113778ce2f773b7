"""Unit tests for scannable code generation."""

import pytest
from PIL import Image

from slideshow.errors import ConfigurationError
from slideshow.qr_code import generate_qr_code


@pytest.mark.unit
class TestGenerateQrCode:
    def test_writes_square_png(self, temp_dir):
        output = generate_qr_code("https://example.com/listing/42", temp_dir / "qr" / "code.png", size=300)

        assert output.exists()
        with Image.open(output) as image:
            assert image.format == "PNG"
            assert image.size == (300, 300)
            # Quiet zone is white
            assert image.convert("RGB").getpixel((0, 0)) == (255, 255, 255)

    def test_high_error_correction(self, temp_dir):
        output = generate_qr_code("hello", temp_dir / "code.png", size=150, error_correction="h")
        with Image.open(output) as image:
            assert image.size == (150, 150)

    @pytest.mark.parametrize("payload", ["", "   ", None])
    def test_empty_payload(self, temp_dir, payload):
        with pytest.raises(ConfigurationError, match="empty"):
            generate_qr_code(payload, temp_dir / "code.png")

    def test_unknown_level(self, temp_dir):
        with pytest.raises(ConfigurationError, match="error correction"):
            generate_qr_code("hello", temp_dir / "code.png", error_correction="X")
