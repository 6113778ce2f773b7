"""Builds the complete FFmpeg filter graph of one slideshow render.

Input order is fixed: intro visual, main images, outro visual, narration,
background music, then scannable-code images. Every input is referenced by
exactly one chain, and the graph is validated before it is handed to the
process executor.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from models import AudioTrack, RenderJob, SegmentKind, Timeline
from models.graph import FilterGraph, FilterStep, InputSpec, stream_ref
from slideshow.audio_mixer import AudioMixer, AudioMixPlan
from slideshow.errors import ConfigurationError, FilterGraphError

logger = logging.getLogger(__name__)

VIDEO_OUT = "vout"
DEFAULT_PAD_COLOR = "black"
DEFAULT_SMALL_QR_SIZE = 150
DEFAULT_OUTRO_QR_SIZE = 400
DEFAULT_QR_MARGIN = 20


class OverlayMode(str, Enum):
    """Which scannable-code overlay a segment stream receives."""

    NONE = "none"
    SMALL = "small"  # Corner code during the main content
    FULL = "full"  # Large centred code on the outro


def overlay_mode(kind: SegmentKind, small_enabled: bool, outro_enabled: bool) -> OverlayMode:
    """Overlay eligibility for one segment.

    A segment never receives both overlays: the small code only applies to
    MAIN and the full-size code only to OUTRO.
    """
    if kind == SegmentKind.MAIN and small_enabled:
        return OverlayMode.SMALL
    if kind == SegmentKind.OUTRO and outro_enabled:
        return OverlayMode.FULL
    return OverlayMode.NONE


@dataclass
class OverlaySpec:
    """Scannable-code image and where it is shown."""

    image: Path
    small_enabled: bool = False
    outro_enabled: bool = False
    small_size: int = DEFAULT_SMALL_QR_SIZE
    outro_size: int = DEFAULT_OUTRO_QR_SIZE
    margin: int = DEFAULT_QR_MARGIN


@dataclass
class BuiltGraph:
    """Inputs, graph and output pins of a render, ready for execution."""

    inputs: list[InputSpec]
    graph: FilterGraph
    video_label: str
    audio_label: str
    duration: float
    mix_plan: AudioMixPlan

    def to_job(
        self,
        output_path: Union[str, Path],
        resolution: tuple[int, int],
        fps: int,
        crf: int,
        encoder_preset: str = "medium",
    ) -> RenderJob:
        return RenderJob(
            inputs=self.inputs,
            filter_graph=self.graph,
            video_label=self.video_label,
            audio_label=self.audio_label,
            output_path=Path(output_path),
            resolution=resolution,
            fps=fps,
            quality_preset=crf,
            duration=self.duration,
            encoder_preset=encoder_preset,
        )


class FilterGraphBuilder:
    """Turns a planned timeline plus audio tracks into one filter graph."""

    def __init__(
        self,
        resolution: tuple[int, int] = (1920, 1080),
        fps: int = 30,
        pad_color: str = DEFAULT_PAD_COLOR,
        mixer: Optional[AudioMixer] = None,
        apply_clipping_recommendation: bool = False,
    ):
        self.width, self.height = resolution
        self.fps = fps
        self.pad_color = pad_color
        self.mixer = mixer or AudioMixer()
        self.apply_clipping_recommendation = apply_clipping_recommendation

    def build(
        self,
        timeline: Timeline,
        voice_track: Optional[AudioTrack],
        background_track: Optional[AudioTrack] = None,
        overlay: Optional[OverlaySpec] = None,
    ) -> BuiltGraph:
        """Build and validate the graph.

        Raises:
            ConfigurationError: Missing images or narration
            FilterGraphError: The assembled graph has broken wiring
        """
        self._check_assets(timeline, voice_track, overlay)

        inputs: list[InputSpec] = []
        graph = FilterGraph()

        def add_input(spec: InputSpec) -> int:
            inputs.append(spec)
            return len(inputs) - 1

        # Positional inputs, in fixed order
        intro = timeline.segment(SegmentKind.INTRO)
        outro = timeline.segment(SegmentKind.OUTRO)
        main = timeline.main

        intro_index = add_input(self._visual_input(intro, "intro")) if intro else None
        main_indexes = [
            add_input(self._image_input(slot.image, slot.clip_duration, "image"))
            for slot in main.slots
        ]
        outro_index = add_input(self._visual_input(outro, "outro")) if outro else None
        voice_index = add_input(InputSpec(path=voice_track.path, stream="a", role="voice"))
        background_index = None
        if background_track is not None:
            background_index = add_input(
                InputSpec(path=background_track.path, stream="a", role="background")
            )

        small_qr_index = None
        full_qr_index = None
        if overlay is not None:
            if overlay_mode(SegmentKind.MAIN, overlay.small_enabled, False) == OverlayMode.SMALL:
                small_qr_index = add_input(
                    self._image_input(overlay.image, main.duration, "qr_small")
                )
            if outro and overlay_mode(SegmentKind.OUTRO, False, overlay.outro_enabled) == OverlayMode.FULL:
                full_qr_index = add_input(
                    self._image_input(overlay.image, outro.duration, "qr_outro")
                )

        # Video chains
        segment_labels: list[str] = []
        if intro is not None:
            segment_labels.append(self._normalize(graph, intro_index, "intro"))

        segment_labels.append(self._main_chain(graph, main, main_indexes, overlay, small_qr_index))

        if outro is not None:
            outro_label = self._normalize(graph, outro_index, "outro_base" if full_qr_index is not None else "outro")
            if full_qr_index is not None:
                graph.add(
                    [stream_ref(full_qr_index, "v")],
                    [FilterStep("scale", {"w": overlay.outro_size, "h": overlay.outro_size})],
                    ["qr_outro"],
                )
                graph.add(
                    [outro_label, "qr_outro"],
                    [FilterStep("overlay", {"x": "(W-w)/2", "y": "(H-h)/2", "shortest": 1})],
                    ["outro"],
                )
                outro_label = "outro"
            segment_labels.append(outro_label)

        final_steps = []
        if len(segment_labels) > 1:
            final_steps.append(FilterStep("concat", {"n": len(segment_labels), "v": 1, "a": 0}))
        final_steps.append(FilterStep("format", {"pix_fmts": "yuv420p"}))
        graph.add(segment_labels, final_steps, [VIDEO_OUT])

        # Audio chains
        intro_volume = intro.volume_level if intro else self.mixer.limits.max_intro_volume
        outro_volume = outro.volume_level if outro else self.mixer.limits.max_outro_volume
        mix_plan = self.mixer.create_safe_audio_filter(
            timeline,
            voice_input=stream_ref(voice_index, "a"),
            background_input=stream_ref(background_index, "a") if background_index is not None else None,
            voice_volume=voice_track.target_volume,
            background_volume=background_track.target_volume if background_track else 0.0,
            intro_volume=intro_volume,
            outro_volume=outro_volume,
            fade_in_duration=background_track.fade_in if background_track else None,
            fade_out_duration=background_track.fade_out if background_track else None,
            apply_recommendation=self.apply_clipping_recommendation,
        )
        graph.chains.extend(mix_plan.chains)

        problems = graph.validate(inputs, [VIDEO_OUT, mix_plan.output_label])
        if problems:
            for problem in problems:
                logger.error(f"Filter graph problem: {problem}")
            raise FilterGraphError(
                f"Filter graph has {len(problems)} wiring problem(s): {problems[0]}",
                problems=problems,
            )

        logger.info(
            f"Built filter graph: {len(inputs)} inputs, {len(graph.chains)} chains, "
            f"{timeline.total_duration:.2f}s"
        )
        return BuiltGraph(
            inputs=inputs,
            graph=graph,
            video_label=VIDEO_OUT,
            audio_label=mix_plan.output_label,
            duration=timeline.total_duration,
            mix_plan=mix_plan,
        )

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def _check_assets(
        self,
        timeline: Timeline,
        voice_track: Optional[AudioTrack],
        overlay: Optional[OverlaySpec],
    ) -> None:
        try:
            main = timeline.main
        except ValueError as e:
            raise ConfigurationError(str(e))
        if not main.slots:
            raise ConfigurationError("Main segment has no images")
        if voice_track is None or not voice_track.path or not Path(voice_track.path).exists():
            raise ConfigurationError(
                f"Voiceover file is missing: {voice_track.path if voice_track else None}"
            )

        missing = [str(s.image) for s in main.slots if not Path(s.image).exists()]
        for seg in timeline.segments:
            if seg.kind != SegmentKind.MAIN:
                missing.extend(str(p) for p in seg.image_refs if not Path(p).exists())
        if overlay is not None and (overlay.small_enabled or overlay.outro_enabled):
            if not Path(overlay.image).exists():
                missing.append(str(overlay.image))
        if missing:
            raise ConfigurationError(f"Missing image files: {', '.join(missing)}")

    def _image_input(self, path: Union[str, Path], duration: float, role: str) -> InputSpec:
        return InputSpec(
            path=path,
            stream="v",
            role=role,
            options=[
                "-loop", "1",
                "-framerate", str(self.fps),
                "-t", f"{duration:.3f}",
            ],
        )

    def _visual_input(self, segment, role: str) -> InputSpec:
        """Image input for intro/outro, or a solid color source without one."""
        if segment.image_refs:
            return self._image_input(segment.image_refs[0], segment.duration, role)
        source = (
            f"color=c={self.pad_color}:s={self.width}x{self.height}"
            f":d={segment.duration:.3f}:r={self.fps}"
        )
        return InputSpec(path=source, stream="v", role=f"{role}_color", options=["-f", "lavfi"])

    # ------------------------------------------------------------------
    # Video chains
    # ------------------------------------------------------------------

    def _normalize(self, graph: FilterGraph, input_index: int, label: str) -> str:
        """Fit inside the frame, pad, and align SAR, format, timestamps and rate.

        ``fps`` must come last: ``setpts`` drops the frame rate, and ``xfade``
        refuses inputs without one.
        """
        graph.add(
            [stream_ref(input_index, "v")],
            [
                FilterStep(
                    "scale",
                    {
                        "w": self.width,
                        "h": self.height,
                        "force_original_aspect_ratio": "decrease",
                    },
                ),
                FilterStep(
                    "pad",
                    {
                        "w": self.width,
                        "h": self.height,
                        "x": "(ow-iw)/2",
                        "y": "(oh-ih)/2",
                        "color": self.pad_color,
                    },
                ),
                FilterStep("setsar", {"sar": 1}),
                FilterStep("format", {"pix_fmts": "yuv420p"}),
                FilterStep("setpts", {"expr": "PTS-STARTPTS"}),
                FilterStep("fps", {"fps": self.fps}),
            ],
            [label],
        )
        return label

    def _main_chain(
        self,
        graph: FilterGraph,
        main,
        input_indexes: list[int],
        overlay: Optional[OverlaySpec],
        small_qr_index: Optional[int],
    ) -> str:
        clips = [self._normalize(graph, idx, f"img{i}") for i, idx in enumerate(input_indexes)]
        transitions = [s.transition_to_next for s in main.slots[:-1]]

        if len(clips) == 1:
            current = clips[0]
        elif all(transitions):
            current = clips[0]
            for i, transition in enumerate(transitions, start=1):
                out = "main_raw" if i == len(clips) - 1 else f"xf{i}"
                graph.add(
                    [current, clips[i]],
                    [
                        FilterStep(
                            "xfade",
                            {
                                "transition": transition.effect,
                                "duration": float(transition.duration),
                                "offset": float(transition.offset),
                            },
                        )
                    ],
                    [out],
                )
                current = out
        else:
            graph.add(
                clips,
                [FilterStep("concat", {"n": len(clips), "v": 1, "a": 0})],
                ["main_raw"],
            )
            current = "main_raw"

        if small_qr_index is not None:
            graph.add(
                [stream_ref(small_qr_index, "v")],
                [FilterStep("scale", {"w": overlay.small_size, "h": overlay.small_size})],
                ["qr_small"],
            )
            graph.add(
                [current, "qr_small"],
                [
                    FilterStep(
                        "overlay",
                        {
                            "x": f"W-w-{overlay.margin}",
                            "y": f"H-h-{overlay.margin}",
                            "shortest": 1,
                        },
                    )
                ],
                ["main"],
            )
            current = "main"
        return current
