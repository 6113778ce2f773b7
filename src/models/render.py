"""Render job and caller option models."""

import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from .graph import FilterGraph, InputSpec

# Named quality presets -> x264 CRF
QUALITY_PRESETS = {
    "low": 28,
    "medium": 23,
    "high": 18,
    "ultra": 15,
}
DEFAULT_CRF = 23

DEFAULT_INTRO_DURATION = 5.0
DEFAULT_OUTRO_DURATION = 5.0

_RESOLUTION = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")
_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def parse_resolution(resolution: str) -> tuple[int, int]:
    """Parse a "WxH" string.

    Raises:
        ValueError: If the string is malformed or a side is zero
    """
    match = _RESOLUTION.match(str(resolution))
    if not match:
        raise ValueError(f"Invalid resolution '{resolution}', expected WxH")
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid resolution '{resolution}', sides must be positive")
    return width, height


def resolve_crf(quality: Union[str, int, float, None]) -> int:
    """Map a named preset or a numeric factor to a CRF value.

    Numeric strings ("18", from the environment or JSON options) count as
    factors, not preset names.
    """
    if isinstance(quality, bool) or quality is None:
        return DEFAULT_CRF
    if isinstance(quality, str):
        try:
            quality = float(quality.strip())
        except ValueError:
            return QUALITY_PRESETS.get(quality.strip().lower(), DEFAULT_CRF)
    if isinstance(quality, (int, float)) and math.isfinite(quality):
        return max(0, min(51, int(round(quality))))
    return DEFAULT_CRF


def to_snake_case(name: str) -> str:
    """camelCase to snake_case, keeping acronym runs together (enableQROutro -> enable_qr_outro)."""
    name = _ACRONYM_BOUNDARY.sub(r"\1_\2", str(name))
    return _WORD_BOUNDARY.sub(r"\1_\2", name).lower()


def _snake_keys(options: dict) -> dict:
    return {to_snake_case(k): v for k, v in options.items()}


@dataclass
class IntroOutroOptions:
    """Intro/outro branding configuration."""

    intro_duration: Any = DEFAULT_INTRO_DURATION
    outro_duration: Any = DEFAULT_OUTRO_DURATION
    intro_volume: Any = 0.4
    outro_volume: Any = 0.4
    intro_image_path: Optional[Path] = None
    outro_image_path: Optional[Path] = None
    enable_qr_outro: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "IntroOutroOptions":
        data = _snake_keys(data or {})
        opts = cls()
        for key in (
            "intro_duration",
            "outro_duration",
            "intro_volume",
            "outro_volume",
            "enable_qr_outro",
        ):
            if key in data:
                setattr(opts, key, data[key])
        if data.get("intro_image_path"):
            opts.intro_image_path = Path(data["intro_image_path"])
        if data.get("outro_image_path"):
            opts.outro_image_path = Path(data["outro_image_path"])
        opts.enable_qr_outro = bool(opts.enable_qr_outro)
        return opts


@dataclass
class RenderOptions:
    """Recognized caller options for one render."""

    resolution: str = "1920x1080"
    fps: int = 30
    quality: Union[str, int, float] = "high"
    enable_background_music: bool = True
    enable_intro_outro: bool = True
    intro_outro_options: IntroOutroOptions = field(default_factory=IntroOutroOptions)
    enable_small_qr_overlay: bool = False
    overlay_payload: Optional[str] = None
    transition_duration: float = 0.5
    transition_effect: str = "fade"
    per_image_duration: Optional[float] = None
    voice_volume: Any = 1.0
    background_volume: Any = 0.15
    fade_in_duration: Any = 2.0
    fade_out_duration: Any = 2.0
    apply_clipping_recommendation: bool = False

    @classmethod
    def from_dict(cls, options: Optional[dict], **defaults) -> "RenderOptions":
        """Build options from a plain dict; camelCase keys are accepted.

        ``defaults`` override the dataclass defaults before caller values are
        applied (used for config-driven defaults and vertical short videos).

        Raises:
            ValueError: On a malformed resolution or a non-positive fps
        """
        data = {**_snake_keys(defaults), **_snake_keys(options or {})}
        opts = cls()
        for key, value in data.items():
            if key == "intro_outro_options":
                opts.intro_outro_options = (
                    value
                    if isinstance(value, IntroOutroOptions)
                    else IntroOutroOptions.from_dict(value)
                )
            elif hasattr(opts, key):
                setattr(opts, key, value)

        parse_resolution(opts.resolution)
        try:
            opts.fps = int(opts.fps)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid fps '{opts.fps}'")
        if opts.fps <= 0:
            raise ValueError(f"Invalid fps '{opts.fps}', must be positive")
        return opts

    @property
    def size(self) -> tuple[int, int]:
        return parse_resolution(self.resolution)

    @property
    def crf(self) -> int:
        return resolve_crf(self.quality)


@dataclass
class RenderJob:
    """Everything the process executor needs to run one render."""

    inputs: list[InputSpec]
    filter_graph: FilterGraph
    video_label: str
    audio_label: str
    output_path: Path
    resolution: tuple[int, int]
    fps: int
    quality_preset: int  # CRF
    duration: float
    encoder_preset: str = "medium"
    audio_bitrate: str = "128k"
    audio_sample_rate: int = 44100
