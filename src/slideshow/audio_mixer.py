"""Audio mixing with safe volume limits.

Normalizes caller volumes to per-role ceilings, reports clipping risk for
simultaneously active tracks, and emits the audio chains of the render's
filter graph:

    [voice]  volume -> adelay (intro offset) -> apad/atrim to the timeline
    [bg]     aloop -> atrim -> afade in/out -> per-segment volume
    [aout]   amix of [voice][bg], duration=first, normalize=0
"""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from models import (
    DEFAULT_VOLUME_LIMITS,
    AudioAnalysis,
    AudioQuality,
    AudioRole,
    ClippingAnalysis,
    MixSettings,
    Timeline,
    VolumeLimits,
)
from models.graph import FilterChain, FilterStep
from slideshow.errors import ProbeError
from slideshow.media_probe import probe_media
from slideshow.timeline_planner import fade_out_start

logger = logging.getLogger(__name__)

VOICE_LABEL = "voice"
BACKGROUND_LABEL = "bg"
MIX_LABEL = "aout"

# Analysis thresholds for narration and music files
MIN_ANALYSIS_DURATION = 10.0
MIN_SAMPLE_RATE = 44100
MAX_CHANNELS = 2
MIN_BITRATE = 128000


@dataclass
class AudioMixPlan:
    """Output of the mixer: normalized settings plus its filter chains."""

    settings: MixSettings
    clipping: ClippingAnalysis
    chains: list[FilterChain] = field(default_factory=list)
    output_label: str = VOICE_LABEL
    has_background: bool = False

    @property
    def is_clipping_safe(self) -> bool:
        return not self.clipping.will_clip


def _as_number(value) -> Optional[float]:
    """Return a finite float, or None for anything else (bools included)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


class AudioMixer:
    """Volume normalization, clipping analysis and audio chain generation."""

    def __init__(self, limits: VolumeLimits = DEFAULT_VOLUME_LIMITS):
        self.limits = limits

    def normalize_volume(self, volume, role: Union[AudioRole, str] = AudioRole.BACKGROUND) -> float:
        """Clamp a volume into [MIN_VOLUME, role ceiling].

        Non-numeric input (NaN, infinities and bools included) returns the
        role default, which is its ceiling.
        """
        role = AudioRole(role)
        ceiling = self.limits.ceiling(role)
        number = _as_number(volume)
        if number is None:
            logger.warning(f"Invalid volume value {volume!r} for {role.value}, using {ceiling}")
            return ceiling

        normalized = max(self.limits.min_volume, min(number, ceiling))
        if normalized != number:
            logger.info(f"Volume normalized: {number} -> {normalized} ({role.value})")
        return normalized

    def validate_fade_duration(self, duration) -> float:
        """Clamp a fade duration into [MIN_FADE, MAX_FADE]; invalid -> recommended."""
        number = _as_number(duration)
        if number is None:
            logger.warning(
                f"Invalid fade duration {duration!r}, using {self.limits.recommended_fade}s"
            )
            return self.limits.recommended_fade

        validated = max(self.limits.min_fade_duration, min(number, self.limits.max_fade_duration))
        if validated != number:
            logger.info(f"Fade duration adjusted: {number}s -> {validated}s")
        return validated

    def check_audio_clipping(self, volumes: dict) -> ClippingAnalysis:
        """Sum simultaneously active volumes and compare to the safe threshold.

        Args:
            volumes: Mapping of role (AudioRole or its value) to volume.
                Non-numeric values count as zero.

        Returns:
            ClippingAnalysis. Advisory only; nothing is raised.
        """
        numeric = {
            AudioRole(role): (_as_number(v) or 0.0) for role, v in volumes.items()
        }
        total = round(sum(numeric.values()), 6)
        threshold = self.limits.safe_mixing_threshold
        will_clip = total > threshold

        recommendation = None
        if will_clip:
            recommendation = {
                role.value: min(v, self.limits.ceiling(role)) for role, v in numeric.items()
            }
            logger.warning(f"Audio clipping risk: total volume {total:.2f} > {threshold}")
            logger.info(f"Recommended volumes: {recommendation}")

        return ClippingAnalysis(
            total_volume=total,
            will_clip=will_clip,
            safe_threshold=threshold,
            recommendation=recommendation,
        )

    def mix_settings(
        self,
        voice_volume=1.0,
        background_volume=0.15,
        intro_volume=0.4,
        outro_volume=0.4,
        fade_in_duration=2.0,
        fade_out_duration=2.0,
    ) -> MixSettings:
        """Normalize all caller-supplied mixing parameters at once."""
        return MixSettings(
            voice_volume=self.normalize_volume(voice_volume, AudioRole.VOICE),
            background_volume=self.normalize_volume(background_volume, AudioRole.BACKGROUND),
            intro_volume=self.normalize_volume(intro_volume, AudioRole.INTRO),
            outro_volume=self.normalize_volume(outro_volume, AudioRole.OUTRO),
            fade_in_duration=self.validate_fade_duration(fade_in_duration),
            fade_out_duration=self.validate_fade_duration(fade_out_duration),
        )

    def peak_clipping(self, settings: MixSettings, timeline: Timeline, has_background: bool) -> ClippingAnalysis:
        """Clipping analysis for the loudest window of the timeline.

        Narration only plays during the main segment; intro and outro carry
        music alone.
        """
        windows = [{AudioRole.VOICE: settings.voice_volume}]
        if has_background:
            windows[0][AudioRole.BACKGROUND] = settings.background_volume
            if timeline.intro_duration > 0:
                windows.append({AudioRole.INTRO: settings.intro_volume})
            if timeline.outro_duration > 0:
                windows.append({AudioRole.OUTRO: settings.outro_volume})

        analyses = [self.check_audio_clipping(w) for w in windows]
        return max(analyses, key=lambda a: a.total_volume)

    def create_safe_audio_filter(
        self,
        timeline: Timeline,
        voice_input: str,
        background_input: Optional[str] = None,
        voice_volume=1.0,
        background_volume=0.15,
        intro_volume=0.4,
        outro_volume=0.4,
        fade_in_duration=2.0,
        fade_out_duration=2.0,
        apply_recommendation: bool = False,
    ) -> AudioMixPlan:
        """Build the audio chains of a render.

        Args:
            timeline: Planned timeline (segment boundaries and total length)
            voice_input: Stream reference of the narration, e.g. "4:a"
            background_input: Stream reference of the music, or None
            apply_recommendation: When the peak window would clip, lower the
                background level so voice plus music fits under the threshold

        Returns:
            AudioMixPlan whose output_label is the final audio pin
        """
        settings = self.mix_settings(
            voice_volume,
            background_volume,
            intro_volume,
            outro_volume,
            fade_in_duration,
            fade_out_duration,
        )
        has_background = background_input is not None
        clipping = self.peak_clipping(settings, timeline, has_background)

        if clipping.will_clip and apply_recommendation and has_background:
            headroom = self.limits.safe_mixing_threshold - settings.voice_volume
            settings.background_volume = round(
                max(self.limits.min_volume, min(settings.background_volume, headroom)), 6
            )
            logger.info(f"Background volume lowered to {settings.background_volume}")
            clipping = self.peak_clipping(settings, timeline, has_background)

        total = timeline.total_duration
        chains = [self._voice_chain(voice_input, settings, timeline, has_background)]
        output_label = VOICE_LABEL

        if has_background:
            chains.append(self._background_chain(background_input, settings, timeline))
            chains.append(
                FilterChain(
                    inputs=[VOICE_LABEL, BACKGROUND_LABEL],
                    steps=[
                        FilterStep(
                            "amix",
                            {
                                "inputs": 2,
                                "duration": "first",
                                "dropout_transition": 2,
                                "normalize": 0,
                            },
                        )
                    ],
                    outputs=[MIX_LABEL],
                )
            )
            output_label = MIX_LABEL

        logger.debug(
            f"Audio mix: voice={settings.voice_volume} bg={settings.background_volume} "
            f"intro={settings.intro_volume} outro={settings.outro_volume} "
            f"total={total:.2f}s background={has_background}"
        )
        return AudioMixPlan(
            settings=settings,
            clipping=clipping,
            chains=chains,
            output_label=output_label,
            has_background=has_background,
        )

    def _voice_chain(
        self, voice_input: str, settings: MixSettings, timeline: Timeline, has_background: bool
    ) -> FilterChain:
        steps = [FilterStep("volume", {"volume": settings.voice_volume})]
        delay_ms = int(round(timeline.main_start * 1000))
        if delay_ms > 0:
            steps.append(FilterStep("adelay", {"delays": delay_ms, "all": 1}))
        steps.append(FilterStep("apad", {"whole_dur": timeline.total_duration}))
        steps.append(FilterStep("atrim", {"end": timeline.total_duration}))
        return FilterChain(inputs=[voice_input], steps=steps, outputs=[VOICE_LABEL])

    def _background_chain(
        self, background_input: str, settings: MixSettings, timeline: Timeline
    ) -> FilterChain:
        total = timeline.total_duration
        steps = [
            FilterStep("aloop", {"loop": -1, "size": "2e+09"}),
            FilterStep("atrim", {"end": total}),
            FilterStep("asetpts", {"expr": "PTS-STARTPTS"}),
            FilterStep("afade", {"t": "in", "st": 0, "d": settings.fade_in_duration}),
            FilterStep(
                "afade",
                {
                    "t": "out",
                    "st": fade_out_start(total, settings.fade_out_duration),
                    "d": settings.fade_out_duration,
                },
            ),
            self._segment_volume_step(settings, timeline),
        ]
        return FilterChain(inputs=[background_input], steps=steps, outputs=[BACKGROUND_LABEL])

    @staticmethod
    def _segment_volume_step(settings: MixSettings, timeline: Timeline) -> FilterStep:
        """Music level per segment: intro, main and outro levels by time."""
        main_level = f"{settings.background_volume:g}"
        expr = main_level
        if timeline.outro_duration > 0:
            expr = f"if(lt(t,{timeline.main_end:.3f}),{main_level},{settings.outro_volume:g})"
        if timeline.intro_duration > 0:
            expr = f"if(lt(t,{timeline.intro_duration:.3f}),{settings.intro_volume:g},{expr})"
        if expr == main_level:
            return FilterStep("volume", {"volume": settings.background_volume})
        return FilterStep("volume", {"volume": expr, "eval": "frame"})

    def create_smooth_volume_transition(
        self, start_volume: float, end_volume: float, duration: float, steps: int = 10
    ) -> list[tuple[float, float]]:
        """Evenly spaced (time, volume) points of a linear ramp.

        Warns when a single step changes the level by more than MAX_VOLUME_JUMP.
        """
        if duration <= 0 or steps <= 0:
            return [(0.0, round(end_volume, 3))]

        change = end_volume - start_volume
        per_step = abs(change) / steps
        if per_step > self.limits.max_volume_jump:
            recommended = abs(change) / self.limits.max_volume_jump * (duration / steps)
            logger.warning(
                f"Volume change too rapid ({per_step:.2f} per step), "
                f"recommend {recommended:.1f}s duration"
            )

        return [
            (round(duration * i / steps, 2), round(start_volume + change * i / steps, 3))
            for i in range(steps + 1)
        ]

    async def analyze_audio_file(
        self, audio_path: Union[str, Path], ffprobe_path: str = "ffprobe"
    ) -> AudioAnalysis:
        """Probe an audio file and grade its quality.

        Raises:
            ProbeError: If ffprobe fails or the file has no audio stream
        """
        metadata = await probe_media(audio_path, ffprobe_path, select_streams="a:0")
        streams = metadata.get("streams") or []
        if not streams:
            raise ProbeError(f"No audio stream found in {Path(audio_path).name}", path=str(audio_path))

        stream = streams[0]
        fmt = metadata.get("format") or {}
        analysis = AudioAnalysis(
            duration=_parse_float(fmt.get("duration")),
            bitrate=_parse_int(fmt.get("bit_rate")),
            size=_parse_int(fmt.get("size")),
            codec=stream.get("codec_name"),
            sample_rate=_parse_int(stream.get("sample_rate")),
            channels=_parse_int(stream.get("channels")),
            bit_depth=_parse_int(stream.get("bits_per_sample")),
        )

        if analysis.duration < MIN_ANALYSIS_DURATION:
            analysis.issues.append("File too short (< 10 seconds)")
        if analysis.sample_rate < MIN_SAMPLE_RATE:
            analysis.issues.append("Low sample rate (< 44.1kHz)")
        if analysis.channels > MAX_CHANNELS:
            analysis.issues.append("Too many channels (> 2)")
        if analysis.bitrate < MIN_BITRATE:
            analysis.issues.append("Low bitrate (< 128kbps)")

        if not analysis.issues:
            analysis.quality = AudioQuality.GOOD
        elif len(analysis.issues) <= 2:
            analysis.quality = AudioQuality.ACCEPTABLE
        else:
            analysis.quality = AudioQuality.POOR
        return analysis

    def log_audio_config(
        self,
        settings: MixSettings,
        analysis: Optional[AudioAnalysis] = None,
        context: str = "audio",
    ) -> None:
        """Log the effective mix settings and, if given, a file analysis."""
        logger.info(
            f"[{context}] voice={settings.voice_volume:.0%} "
            f"background={settings.background_volume:.0%} "
            f"intro={settings.intro_volume:.0%} outro={settings.outro_volume:.0%} "
            f"fade in/out={settings.fade_in_duration}s/{settings.fade_out_duration}s"
        )
        if analysis is not None:
            logger.info(
                f"[{context}] {analysis.duration:.1f}s {analysis.sample_rate}Hz "
                f"{analysis.channels}ch {analysis.bitrate // 1000}kbps quality={analysis.quality.value}"
            )
            for issue in analysis.issues:
                logger.warning(f"[{context}] {issue}")


def _parse_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _parse_int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0
