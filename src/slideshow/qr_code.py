"""Renders the scannable code shown over the main content and on the outro."""

import logging
from pathlib import Path
from typing import Union

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q

from slideshow.errors import ConfigurationError

logger = logging.getLogger(__name__)

ERROR_CORRECTION_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}

DEFAULT_QR_SIZE = 400


def generate_qr_code(
    payload: str,
    output_path: Union[str, Path],
    size: int = DEFAULT_QR_SIZE,
    error_correction: str = "M",
    border: int = 4,
) -> Path:
    """Write a square PNG encoding ``payload``.

    Args:
        payload: Text or URL to encode
        output_path: Destination PNG
        size: Edge length in pixels
        error_correction: One of L, M, Q, H
        border: Quiet zone width in modules

    Raises:
        ConfigurationError: Empty payload or unknown error correction level
    """
    if not payload or not str(payload).strip():
        raise ConfigurationError("Scannable code payload is empty")
    level = ERROR_CORRECTION_LEVELS.get(error_correction.upper())
    if level is None:
        raise ConfigurationError(f"Unknown error correction level '{error_correction}'")

    qr = qrcode.QRCode(error_correction=level, box_size=10, border=border)
    qr.add_data(str(payload).strip())
    qr.make(fit=True)

    image = qr.make_image(fill_color="black", back_color="white").get_image().convert("RGB")
    image = image.resize((size, size), Image.Resampling.NEAREST)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(output_path, format="PNG")

    logger.info(f"Scannable code saved to {output_path.name} ({size}x{size})")
    return output_path
