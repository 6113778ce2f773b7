"""Timeline data models for slideshow composition."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class SegmentKind(str, Enum):
    """Kind of a time-bounded portion of the output video."""

    INTRO = "intro"
    MAIN = "main"
    OUTRO = "outro"


class MediaKind(str, Enum):
    """Kind of a caller-supplied media asset."""

    IMAGE = "image"
    AUDIO = "audio"


@dataclass(frozen=True)
class MediaAsset:
    """A caller-supplied file. The engine never modifies it."""

    path: Path
    kind: MediaKind


@dataclass
class Transition:
    """Crossfade between two adjacent image clips."""

    effect: str  # FFmpeg xfade transition name
    duration: float  # Overlap in seconds
    offset: float  # Start of the overlap, relative to the main segment start


@dataclass
class ImageSlot:
    """One image clip inside the main segment."""

    image: Path
    clip_duration: float  # Length of the looped image clip, overlap included
    start: float  # Start time relative to the main segment
    transition_to_next: Optional[Transition] = None


@dataclass
class Segment:
    """A kind-tagged portion of the output timeline."""

    kind: SegmentKind
    duration: float
    volume_level: float  # Background music level while this segment plays
    image_refs: list[Path] = field(default_factory=list)
    transition_to_next: Optional[Transition] = None
    slots: list[ImageSlot] = field(default_factory=list)

    @property
    def transitions(self) -> list[Transition]:
        """Crossfades inside this segment, in order."""
        return [s.transition_to_next for s in self.slots if s.transition_to_next]

    def to_dict(self) -> dict:
        """Convert to dictionary for logging and status output."""
        return {
            "kind": self.kind.value,
            "duration": round(self.duration, 3),
            "volume_level": self.volume_level,
            "images": [str(p) for p in self.image_refs],
            "transitions": [
                {"effect": t.effect, "duration": t.duration, "offset": round(t.offset, 3)}
                for t in self.transitions
            ],
        }


@dataclass
class Timeline:
    """Ordered segments of one render plus the total duration."""

    segments: list[Segment]
    total_duration: float

    def segment(self, kind: SegmentKind) -> Optional[Segment]:
        """Return the first segment of the given kind, if present."""
        for seg in self.segments:
            if seg.kind == kind:
                return seg
        return None

    @property
    def main(self) -> Segment:
        main = self.segment(SegmentKind.MAIN)
        if main is None:
            raise ValueError("Timeline has no main segment")
        return main

    @property
    def intro_duration(self) -> float:
        intro = self.segment(SegmentKind.INTRO)
        return intro.duration if intro else 0.0

    @property
    def outro_duration(self) -> float:
        outro = self.segment(SegmentKind.OUTRO)
        return outro.duration if outro else 0.0

    @property
    def main_duration(self) -> float:
        return self.main.duration

    @property
    def main_start(self) -> float:
        """Offset of the main segment inside the output video."""
        return self.intro_duration

    @property
    def main_end(self) -> float:
        return self.intro_duration + self.main_duration

    def to_dict(self) -> dict:
        return {
            "total_duration": round(self.total_duration, 3),
            "segments": [s.to_dict() for s in self.segments],
        }
