"""Slideshow composition pipeline.

Takes product images plus a narration file and renders one promotional video
with a single FFmpeg invocation:

1. Validate options and input files
2. Plan the timeline (intro, main images with crossfades, outro)
3. Normalize the audio mix and analyze the narration
4. Build and validate the complete filter graph
5. Render through the process executor

All temp files of a run share one SessionId. They are removed after a
successful render and kept after a failure so the ffmpeg command can be
re-run. The rendered output (or a partial file) is always kept.
"""

import asyncio
import logging
import random
from pathlib import Path
from typing import Optional, Sequence, Union

from models import (
    AudioRole,
    AudioTrack,
    MediaAsset,
    MediaKind,
    RenderOptions,
    SegmentKind,
    Timeline,
)
from slideshow.asset_resolver import AssetResolver
from slideshow.audio_mixer import AudioMixer
from slideshow.errors import STAGE_PLANNING, ConfigurationError, ProbeError, SlideshowError
from slideshow.filter_graph import FilterGraphBuilder, OverlaySpec
from slideshow.media_probe import get_audio_duration, get_video_info
from slideshow.process_executor import ProcessExecutor
from slideshow.qr_code import generate_qr_code
from slideshow.timeline_planner import SegmentRequest, TimelinePlanner
from utils.config import (
    get_supported_audio_formats,
    get_supported_image_formats,
    load_config,
    setup_logging,
    validate_config,
)
from utils.logging import clear_session_context, set_session_context, setup_structured_logging
from utils.progress import ProcessingStatus, ProgressCallback

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

SHORT_VIDEO_RESOLUTION = "1080x1920"

DEFAULT_CONFIG = {
    "ffmpeg_path": "ffmpeg",
    "ffprobe_path": "ffprobe",
    "temp_dir": "temp",
    "output_dir": "output",
    "background_music_dir": "media",
    "background_music_pattern": "*.wav",
    "intro_image_path": "media/banner.jpg",
    "outro_image_path": "media/profile.jpg",
    "default_resolution": "1920x1080",
    "default_fps": 30,
    "default_quality": "high",
    "transition_duration": 0.5,
    "transition_effect": "fade",
    "pad_color": "black",
    "qr_overlay_size": 150,
    "qr_outro_size": 400,
    "status_file": None,
}


def select_background_music(
    directory: Optional[PathLike],
    pattern: str = "*.wav",
    rng: Optional[random.Random] = None,
) -> Optional[Path]:
    """Pick a random music file, or None when nothing matches.

    A missing or empty directory disables background music without error.
    """
    if not directory:
        return None
    directory = Path(directory)
    if not directory.is_dir():
        logger.info(f"Background music directory not found: {directory}")
        return None

    audio_formats = get_supported_audio_formats()
    candidates = sorted(
        p for p in directory.glob(pattern)
        if p.is_file() and p.suffix.lower() in audio_formats
    )
    if not candidates:
        logger.info(f"No background music matching '{pattern}' in {directory}")
        return None
    return (rng or random).choice(candidates)


class SlideshowComposer:
    """Renders slideshow videos from images and a narration file."""

    def __init__(
        self,
        config: Optional[dict] = None,
        mixer: Optional[AudioMixer] = None,
        executor: Optional[ProcessExecutor] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = {**DEFAULT_CONFIG, **(config or {})}
        self.mixer = mixer or AudioMixer()
        self.executor = executor or ProcessExecutor(ffmpeg_path=self.config["ffmpeg_path"])
        self.rng = rng or random.Random()

    @classmethod
    def from_env(cls, configure_logging: bool = True, **kwargs) -> "SlideshowComposer":
        """Composer configured from environment variables and the project .env file.

        Raises:
            ConfigurationError: If the loaded configuration does not validate
        """
        config = load_config()
        if configure_logging:
            if config["log_json"]:
                setup_structured_logging(config["log_level"], json_output=True)
            else:
                setup_logging(config["log_level"])

        errors = validate_config(config)
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ConfigurationError(f"Invalid configuration: {'; '.join(errors)}")
        return cls(config, **kwargs)

    async def create_slideshow(
        self,
        image_paths: Sequence[PathLike],
        audio_path: PathLike,
        output_path: Optional[PathLike] = None,
        options: Optional[dict] = None,
        progress_callback: Optional[ProgressCallback] = None,
        **defaults,
    ) -> Path:
        """Render a slideshow.

        Args:
            image_paths: Main images in display order
            audio_path: Narration file; its length sets the main duration
            output_path: Destination file. Defaults to a session-scoped name
                in the configured output directory.
            options: Caller options (see RenderOptions.from_dict)
            progress_callback: Receives (step, percent, message)

        Returns:
            Path to the rendered video

        Raises:
            SlideshowError: Any failure, tagged with the stage it came from
        """
        resolver = AssetResolver(self.config["temp_dir"], self.config["output_dir"])
        set_session_context(resolver.session_id)
        output = Path(output_path) if output_path else resolver.output_paths(
            "slideshow", include_thumbnails=False
        )["video"]
        status = ProcessingStatus(
            resolver.session_id,
            output_path=str(output),
            status_file=resolver.status_path(self.config.get("status_file")),
            callback=progress_callback,
        )

        try:
            status.start_stage("validate", "Validating inputs")
            opts = self._render_options(options, defaults)
            image_assets, voice_asset = self._check_inputs(image_paths, audio_path)
            images = [asset.path for asset in image_assets]
            voice_path = voice_asset.path
            resolver.ensure_dirs()
            status.complete_stage("validate")

            logger.info(
                f"Creating slideshow from {len(images)} images at {opts.resolution} "
                f"{opts.fps}fps (session {resolver.session_id})"
            )

            status.start_stage("planning", "Planning timeline")
            per_image = opts.per_image_duration
            voice_duration = None if per_image else await self._voice_duration(voice_path)
            music = self._background_music(opts)
            overlay = await self._overlay(opts, resolver)
            intro, outro = self._branding_requests(opts, overlay)
            timeline = TimelinePlanner(
                transition_duration=opts.transition_duration,
                transition_effect=opts.transition_effect,
                rng=self.rng,
            ).plan(
                images,
                voiceover_duration=voice_duration,
                per_image_duration=per_image,
                intro=intro,
                outro=outro,
                background_volume=self.mixer.normalize_volume(
                    opts.background_volume, AudioRole.BACKGROUND
                ),
            )
            logger.info(describe_timeline(timeline))
            status.complete_stage("planning")

            status.start_stage("mixing", "Analyzing audio")
            voice_track, background_track = await self._audio_tracks(opts, voice_path, music)
            status.complete_stage("mixing")

            status.start_stage("graph", "Building filter graph")
            builder = FilterGraphBuilder(
                resolution=opts.size,
                fps=opts.fps,
                pad_color=self.config["pad_color"],
                mixer=self.mixer,
                apply_clipping_recommendation=opts.apply_clipping_recommendation,
            )
            built = builder.build(timeline, voice_track, background_track, overlay)
            job = built.to_job(output, opts.size, opts.fps, opts.crf)
            status.complete_stage("graph")

            status.start_stage("render", "Rendering video")
            result = await self.executor.render(
                job,
                progress_callback=lambda percent, message: status.update_stage(
                    "render", completed=percent, message=message
                ),
            )
            status.complete_stage("render")
            status.complete_processing()

            removed = await asyncio.to_thread(resolver.cleanup_temp)
            if removed:
                logger.debug(f"Removed {removed} temp files")

            logger.info(f"Slideshow complete: {result} ({timeline.total_duration:.1f}s)")
            return result

        except SlideshowError as e:
            if status.current_stage:
                status.fail_stage(status.current_stage, str(e))
            logger.info(f"Keeping temp files of failed session {resolver.session_id} in {resolver.temp_dir}")
            raise
        finally:
            clear_session_context()

    async def create_video(
        self,
        image_path: PathLike,
        audio_path: PathLike,
        output_path: Optional[PathLike] = None,
        options: Optional[dict] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        """Render a video from a single image."""
        return await self.create_slideshow(
            [image_path], audio_path, output_path, options, progress_callback
        )

    async def create_short_video(
        self,
        image_paths: Sequence[PathLike],
        audio_path: PathLike,
        output_path: Optional[PathLike] = None,
        options: Optional[dict] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        """Render a vertical short video (1080x1920 unless overridden)."""
        return await self.create_slideshow(
            image_paths,
            audio_path,
            output_path,
            options,
            progress_callback,
            resolution=SHORT_VIDEO_RESOLUTION,
        )

    async def get_video_info(self, video_path: PathLike) -> dict:
        return await get_video_info(video_path, self.config["ffprobe_path"])

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _render_options(self, options: Optional[dict], overrides: dict) -> RenderOptions:
        defaults = {
            "resolution": self.config["default_resolution"],
            "fps": self.config["default_fps"],
            "quality": self.config["default_quality"],
            "transition_duration": self.config["transition_duration"],
            "transition_effect": self.config["transition_effect"],
            **overrides,
        }
        try:
            return RenderOptions.from_dict(options, **defaults)
        except ValueError as e:
            raise ConfigurationError(str(e))

    @staticmethod
    def _check_inputs(image_paths: Sequence[PathLike], audio_path: PathLike) -> tuple[list[MediaAsset], MediaAsset]:
        """Resolve caller files into read-only media assets.

        Raises:
            ConfigurationError: No images, or a missing image or audio file
        """
        if not image_paths:
            raise ConfigurationError("At least one image is required")

        images = [Path(p).resolve() for p in image_paths]
        missing = [str(p) for p in images if not p.is_file()]
        if missing:
            raise ConfigurationError(f"Image file not found: {', '.join(missing)}")

        image_formats = get_supported_image_formats()
        for image in images:
            if image.suffix.lower() not in image_formats:
                logger.warning(f"Unrecognized image extension: {image.name}")

        voice = Path(audio_path).resolve() if audio_path else None
        if voice is None or not voice.is_file():
            raise ConfigurationError(f"Audio file not found: {audio_path}")
        return [MediaAsset(p, MediaKind.IMAGE) for p in images], MediaAsset(voice, MediaKind.AUDIO)

    # ------------------------------------------------------------------
    # Planning helpers
    # ------------------------------------------------------------------

    async def _voice_duration(self, voice_path: Path) -> float:
        try:
            duration = await get_audio_duration(voice_path, self.config["ffprobe_path"])
        except ProbeError as e:
            raise ProbeError(e.args[0], path=e.path, stage=STAGE_PLANNING) from e
        logger.info(f"Voiceover duration: {duration:.2f}s")
        return duration

    def _background_music(self, opts: RenderOptions) -> Optional[Path]:
        if not opts.enable_background_music:
            return None
        music = select_background_music(
            self.config.get("background_music_dir"),
            self.config.get("background_music_pattern", "*.wav"),
            self.rng,
        )
        if music:
            logger.info(f"Background music: {music.name}")
        return music

    async def _overlay(self, opts: RenderOptions, resolver: AssetResolver) -> Optional[OverlaySpec]:
        small = opts.enable_small_qr_overlay
        outro = opts.enable_intro_outro and opts.intro_outro_options.enable_qr_outro
        if not (small or outro):
            return None
        if not opts.overlay_payload:
            logger.warning("Scannable code requested without an overlay payload, skipping it")
            return None

        image = await asyncio.to_thread(
            generate_qr_code,
            opts.overlay_payload,
            resolver.qr_code_path(),
            max(self.config["qr_outro_size"], self.config["qr_overlay_size"]),
        )
        return OverlaySpec(
            image=image,
            small_enabled=small,
            outro_enabled=outro,
            small_size=self.config["qr_overlay_size"],
            outro_size=self.config["qr_outro_size"],
        )

    def _branding_requests(
        self, opts: RenderOptions, overlay: Optional[OverlaySpec]
    ) -> tuple[Optional[SegmentRequest], Optional[SegmentRequest]]:
        """Intro/outro requests. A segment is enabled only when its image exists,
        except an outro carrying the full-size code, which falls back to a
        solid background."""
        if not opts.enable_intro_outro:
            return None, None
        io = opts.intro_outro_options

        intro = None
        intro_image = Path(io.intro_image_path or self.config["intro_image_path"])
        if intro_image.is_file():
            intro = SegmentRequest(
                duration=io.intro_duration,
                volume=self.mixer.normalize_volume(io.intro_volume, AudioRole.INTRO),
                image=intro_image,
            )
        else:
            logger.warning(f"Intro image not found, skipping intro: {intro_image}")

        outro = None
        outro_image = Path(io.outro_image_path or self.config["outro_image_path"])
        qr_outro = overlay is not None and overlay.outro_enabled
        if outro_image.is_file() or qr_outro:
            outro = SegmentRequest(
                duration=io.outro_duration,
                volume=self.mixer.normalize_volume(io.outro_volume, AudioRole.OUTRO),
                image=outro_image if outro_image.is_file() else None,
            )
        else:
            logger.warning(f"Outro image not found, skipping outro: {outro_image}")
        return intro, outro

    async def _audio_tracks(
        self, opts: RenderOptions, voice_path: Path, music: Optional[Path]
    ) -> tuple[AudioTrack, Optional[AudioTrack]]:
        analysis = await self.mixer.analyze_audio_file(voice_path, self.config["ffprobe_path"])
        settings = self.mixer.mix_settings(
            opts.voice_volume,
            opts.background_volume,
            opts.intro_outro_options.intro_volume,
            opts.intro_outro_options.outro_volume,
            opts.fade_in_duration,
            opts.fade_out_duration,
        )
        self.mixer.log_audio_config(settings, analysis, context="voiceover")

        voice = AudioTrack(AudioRole.VOICE, voice_path, settings.voice_volume)
        background = None
        if music is not None:
            background = AudioTrack(
                AudioRole.BACKGROUND,
                music,
                settings.background_volume,
                fade_in=settings.fade_in_duration,
                fade_out=settings.fade_out_duration,
            )
        return voice, background


def describe_timeline(timeline: Timeline) -> str:
    """One-line summary of a planned timeline for logs and CLIs."""
    parts = []
    for seg in timeline.segments:
        label = seg.kind.value
        if seg.kind == SegmentKind.MAIN:
            label += f"[{len(seg.image_refs)} images, {len(seg.transitions)} crossfades]"
        parts.append(f"{label}={seg.duration:.2f}s")
    return " | ".join(parts) + f" | total={timeline.total_duration:.2f}s"
