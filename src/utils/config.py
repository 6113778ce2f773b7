"""Configuration loading and validation for the slideshow engine."""

import logging
import os
import shutil
from pathlib import Path

from dotenv import load_dotenv
from rich.logging import RichHandler

from models.render import QUALITY_PRESETS, parse_resolution

# Get the project root directory (parent of src)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Load environment variables from .env file in project root
load_dotenv(PROJECT_ROOT / ".env")


def load_config() -> dict:
    """Load configuration from environment variables."""

    # Helper function to resolve paths relative to project root
    def resolve_path(path: str | None, default_relative: str | None) -> str | None:
        if not path:
            return str(PROJECT_ROOT / default_relative) if default_relative else None
        if Path(path).is_absolute():
            return path
        return str(PROJECT_ROOT / path)

    media_dir = resolve_path(os.getenv("MEDIA_DIR"), "media")

    config = {
        # External tools
        "ffmpeg_path": os.getenv("FFMPEG_PATH", "ffmpeg"),
        "ffprobe_path": os.getenv("FFPROBE_PATH", "ffprobe"),
        # Working directories
        "temp_dir": resolve_path(os.getenv("TEMP_DIR"), "temp"),
        "output_dir": resolve_path(os.getenv("OUTPUT_DIR"), "output"),
        "media_dir": media_dir,
        # Background music: random pick from matching files, empty dir disables it
        "background_music_dir": resolve_path(os.getenv("BACKGROUND_MUSIC_DIR"), None) or media_dir,
        "background_music_pattern": os.getenv("BACKGROUND_MUSIC_PATTERN", "*.wav"),
        # Branding images (segment enabled only when the file exists)
        "intro_image_path": resolve_path(os.getenv("INTRO_IMAGE_PATH"), None)
        or str(Path(media_dir) / "banner.jpg"),
        "outro_image_path": resolve_path(os.getenv("OUTRO_IMAGE_PATH"), None)
        or str(Path(media_dir) / "profile.jpg"),
        # Render defaults
        "default_resolution": os.getenv("DEFAULT_RESOLUTION", "1920x1080"),
        "default_fps": int(os.getenv("DEFAULT_FPS", "30")),
        "default_quality": os.getenv("DEFAULT_QUALITY", "high"),
        "transition_duration": float(os.getenv("TRANSITION_DURATION", "0.5")),
        "transition_effect": os.getenv("TRANSITION_EFFECT", "fade"),
        "pad_color": os.getenv("PAD_COLOR", "black"),
        # Scannable code sizes in pixels
        "qr_overlay_size": int(os.getenv("QR_OVERLAY_SIZE", "150")),
        "qr_outro_size": int(os.getenv("QR_OUTRO_SIZE", "400")),
        # Logging and status export
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_json": os.getenv("LOG_JSON", "false").lower() == "true",
        "status_file": resolve_path(os.getenv("STATUS_FILE"), None),
    }

    return config


def _is_number(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


def validate_config(config: dict) -> list[str]:
    """Validate configuration and return list of errors."""
    errors = []

    # External tools must be resolvable
    for key, name in (("ffmpeg_path", "FFMPEG_PATH"), ("ffprobe_path", "FFPROBE_PATH")):
        tool = config.get(key)
        if not tool:
            errors.append(f"{name} is required")
        elif not (Path(tool).is_file() or shutil.which(tool)):
            errors.append(f"{name} '{tool}' not found on PATH")

    try:
        parse_resolution(config.get("default_resolution", ""))
    except ValueError as e:
        errors.append(f"DEFAULT_RESOLUTION: {e}")

    if config.get("default_fps", 0) <= 0:
        errors.append("DEFAULT_FPS must be positive")

    quality = str(config.get("default_quality", "")).strip()
    if quality.lower() not in QUALITY_PRESETS and not _is_number(quality):
        errors.append(
            f"DEFAULT_QUALITY must be one of {', '.join(QUALITY_PRESETS)} or a CRF number"
        )

    if config.get("transition_duration", 0) < 0:
        errors.append("TRANSITION_DURATION cannot be negative")

    for key in ("qr_overlay_size", "qr_outro_size"):
        if config.get(key, 0) <= 0:
            errors.append(f"{key.upper()} must be positive")

    # Working directories must be creatable
    for key in ("temp_dir", "output_dir"):
        if config.get(key):
            try:
                Path(config[key]).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create {key}: {e}")

    return errors


def setup_logging(log_level: str = "INFO", log_file: str | None = None) -> None:
    """Set up logging configuration with Rich for readable terminal output."""
    # Clear any existing handlers
    logging.root.handlers.clear()

    rich_handler = RichHandler(
        show_time=True,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,  # Disable markup to avoid conflicts
    )
    handlers: list[logging.Handler] = [rich_handler]

    # Optional plain text log file
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=handlers,
        format="%(message)s",
    )

    logging.getLogger("PIL").setLevel(logging.WARNING)


def get_supported_image_formats() -> list[str]:
    """Return list of supported image file extensions."""
    return [".jpg", ".jpeg", ".png", ".webp", ".bmp"]


def get_supported_audio_formats() -> list[str]:
    """Return list of supported audio file extensions."""
    return [".mp3", ".wav", ".flac", ".aac", ".ogg", ".m4a"]
