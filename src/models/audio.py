"""Audio data models: roles, tracks, limits and analysis results."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class AudioRole(str, Enum):
    """Role of an audio track in the final mix."""

    VOICE = "voice"
    BACKGROUND = "background"
    INTRO = "intro"
    OUTRO = "outro"


class AudioQuality(str, Enum):
    """Coarse quality grade derived from probe results."""

    GOOD = "good"
    ACCEPTABLE = "acceptable"
    POOR = "poor"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class VolumeLimits:
    """Safe volume limits used by the audio mixer.

    Passed to AudioMixer at construction time so a test (or a caller with a
    different mastering target) can override any bound without touching
    process-wide state.
    """

    max_voice_volume: float = 1.0
    max_intro_volume: float = 0.4
    max_outro_volume: float = 0.4
    max_background_volume: float = 0.2
    min_volume: float = 0.05
    max_volume_jump: float = 0.2
    safe_mixing_threshold: float = 1.2
    min_fade_duration: float = 1.0
    max_fade_duration: float = 3.0
    recommended_fade: float = 2.0

    def ceiling(self, role: AudioRole) -> float:
        """Maximum volume for a role."""
        return {
            AudioRole.VOICE: self.max_voice_volume,
            AudioRole.INTRO: self.max_intro_volume,
            AudioRole.OUTRO: self.max_outro_volume,
            AudioRole.BACKGROUND: self.max_background_volume,
        }[role]


DEFAULT_VOLUME_LIMITS = VolumeLimits()


@dataclass
class AudioTrack:
    """An audio input together with its mixing parameters."""

    role: AudioRole
    path: Path
    target_volume: float = 1.0
    fade_in: float = 0.0
    fade_out: float = 0.0


@dataclass
class ClippingAnalysis:
    """Advisory result of a clipping check. Never raised."""

    total_volume: float
    will_clip: bool
    safe_threshold: float
    recommendation: Optional[dict[str, float]] = None

    def to_dict(self) -> dict:
        return {
            "total_volume": self.total_volume,
            "will_clip": self.will_clip,
            "safe_threshold": self.safe_threshold,
            "recommendation": self.recommendation,
        }


@dataclass
class MixSettings:
    """Normalized values actually used to build the audio chain."""

    voice_volume: float
    background_volume: float
    intro_volume: float
    outro_volume: float
    fade_in_duration: float
    fade_out_duration: float


@dataclass
class AudioAnalysis:
    """Probe-derived description of an audio file."""

    duration: float
    bitrate: int
    size: int
    codec: Optional[str]
    sample_rate: int
    channels: int
    bit_depth: int = 0
    issues: list[str] = field(default_factory=list)
    quality: AudioQuality = AudioQuality.UNKNOWN

    def to_dict(self) -> dict:
        return {
            "duration": self.duration,
            "bitrate": self.bitrate,
            "size": self.size,
            "codec": self.codec,
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "bit_depth": self.bit_depth,
            "issues": list(self.issues),
            "quality": self.quality.value,
        }
