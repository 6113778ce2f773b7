"""Timeline planning: segment durations, image clip lengths and crossfades.

The main segment holds one clip per image. Adjacent clips overlap by the
transition duration, so with ``n`` images, main duration ``D`` and transition
``t`` each clip lasts ``(D + (n - 1) * t) / n`` and the crossfades start at
``(i + 1) * (clip - t)``. The visible main content then lasts exactly ``D``.
"""

import logging
import math
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from models import ImageSlot, Segment, SegmentKind, Timeline, Transition
from models.render import DEFAULT_INTRO_DURATION, DEFAULT_OUTRO_DURATION
from slideshow.errors import ConfigurationError

logger = logging.getLogger(__name__)

# FFmpeg xfade transitions eligible for the "random" effect
XFADE_EFFECTS = [
    "fade",
    "dissolve",
    "wipeleft",
    "wiperight",
    "slideleft",
    "slideright",
    "smoothleft",
    "smoothright",
    "circlecrop",
    "circleopen",
    "radial",
    "fadeblack",
]

RANDOM_EFFECT = "random"
DEFAULT_EFFECT = "fade"
DEFAULT_TRANSITION_DURATION = 0.5


@dataclass
class SegmentRequest:
    """Caller request for an intro or outro segment."""

    duration: object = None
    volume: float = 0.4
    image: Optional[Path] = None


def fade_out_start(segment_duration: float, fade_duration: float) -> float:
    """Start time of a fade-out ending with the segment. Always in [0, d]."""
    return max(0.0, segment_duration - fade_duration)


def _valid_duration(value, default: float, label: str) -> float:
    if isinstance(value, bool) or value is None:
        return default
    try:
        duration = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {label} duration {value!r}, using {default}s")
        return default
    if not math.isfinite(duration) or duration <= 0:
        logger.warning(f"Invalid {label} duration {value!r}, using {default}s")
        return default
    return duration


class TimelinePlanner:
    """Computes the segment layout of one render."""

    def __init__(
        self,
        transition_duration: float = DEFAULT_TRANSITION_DURATION,
        transition_effect: str = DEFAULT_EFFECT,
        rng: Optional[random.Random] = None,
    ):
        self.transition_duration = max(0.0, float(transition_duration or 0.0))
        self.transition_effect = transition_effect or DEFAULT_EFFECT
        self.rng = rng or random.Random()

    def plan(
        self,
        image_paths: Sequence[Union[str, Path]],
        voiceover_duration: Optional[float] = None,
        per_image_duration: Optional[float] = None,
        intro: Optional[SegmentRequest] = None,
        outro: Optional[SegmentRequest] = None,
        background_volume: float = 0.0,
    ) -> Timeline:
        """Plan intro, main and outro segments.

        Args:
            image_paths: Main images in display order
            voiceover_duration: Narration length; divided evenly across images
            per_image_duration: Explicit per-image display time, used when
                no voiceover duration is given
            intro: Intro request, or None for no intro
            outro: Outro request, or None for no outro
            background_volume: Music level while the main segment plays

        Returns:
            Timeline whose segment durations sum to its total duration

        Raises:
            ConfigurationError: No images, or no positive main duration
        """
        images = [Path(p) for p in image_paths]
        if not images:
            raise ConfigurationError("At least one image is required")

        main_duration = self._main_duration(len(images), voiceover_duration, per_image_duration)

        segments: list[Segment] = []
        if intro is not None:
            segments.append(
                Segment(
                    kind=SegmentKind.INTRO,
                    duration=_valid_duration(intro.duration, DEFAULT_INTRO_DURATION, "intro"),
                    volume_level=intro.volume,
                    image_refs=[intro.image] if intro.image else [],
                )
            )

        slots = self._plan_slots(images, main_duration)
        segments.append(
            Segment(
                kind=SegmentKind.MAIN,
                duration=main_duration,
                volume_level=background_volume,
                image_refs=images,
                slots=slots,
            )
        )

        if outro is not None:
            segments.append(
                Segment(
                    kind=SegmentKind.OUTRO,
                    duration=_valid_duration(outro.duration, DEFAULT_OUTRO_DURATION, "outro"),
                    volume_level=outro.volume,
                    image_refs=[outro.image] if outro.image else [],
                )
            )

        total = sum(s.duration for s in segments)
        if total <= 0:
            raise ConfigurationError(f"Total duration must be positive, got {total}")

        timeline = Timeline(segments=segments, total_duration=total)
        logger.info(
            f"Planned timeline: {len(images)} images, "
            f"intro={timeline.intro_duration:.2f}s main={main_duration:.2f}s "
            f"outro={timeline.outro_duration:.2f}s total={total:.2f}s"
        )
        return timeline

    def _main_duration(
        self,
        image_count: int,
        voiceover_duration: Optional[float],
        per_image_duration: Optional[float],
    ) -> float:
        if voiceover_duration is not None:
            duration = _number(voiceover_duration)
            if duration is None or duration <= 0:
                raise ConfigurationError(
                    f"Voiceover duration must be positive, got {voiceover_duration!r}"
                )
            return duration
        if per_image_duration is not None:
            per_image = _number(per_image_duration)
            if per_image is None or per_image <= 0:
                raise ConfigurationError(
                    f"Per-image duration must be positive, got {per_image_duration!r}"
                )
            return per_image * image_count
        raise ConfigurationError("Either a voiceover duration or a per-image duration is required")

    def _plan_slots(self, images: list[Path], main_duration: float) -> list[ImageSlot]:
        count = len(images)
        if count == 1:
            return [ImageSlot(image=images[0], clip_duration=main_duration, start=0.0)]

        overlap = self.transition_duration
        clip = (main_duration + (count - 1) * overlap) / count
        if overlap > clip / 2:
            # Clips too short to hold the transition: overlap becomes half a clip
            overlap = main_duration / (count + 1)
            clip = 2 * overlap
            logger.debug(f"Transition shortened to {overlap:.3f}s")

        slots = []
        for i, image in enumerate(images):
            transition = None
            if i < count - 1 and overlap > 0:
                transition = Transition(
                    effect=self._pick_effect(),
                    duration=overlap,
                    offset=(i + 1) * (clip - overlap),
                )
            slots.append(
                ImageSlot(
                    image=image,
                    clip_duration=clip,
                    start=i * (clip - overlap),
                    transition_to_next=transition,
                )
            )
        return slots

    def _pick_effect(self) -> str:
        if self.transition_effect == RANDOM_EFFECT:
            return self.rng.choice(XFADE_EFFECTS)
        return self.transition_effect


def _number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None
