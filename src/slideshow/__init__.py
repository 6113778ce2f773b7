"""Slideshow - audio-visual composition engine for promotional videos."""

from .asset_resolver import AssetResolver, extract_session_id, generate_session_id
from .audio_mixer import AudioMixer, AudioMixPlan
from .composer import SlideshowComposer, select_background_music
from .errors import (
    ConfigurationError,
    DiskOrIOError,
    ExecutableNotFoundError,
    FilterGraphError,
    InvalidFilterGraphError,
    OutputValidationError,
    ProbeError,
    SlideshowError,
    ToolInvocationError,
    UnknownToolFailure,
)
from .filter_graph import BuiltGraph, FilterGraphBuilder, OverlayMode, OverlaySpec, overlay_mode
from .process_executor import ProcessExecutor, ProcessResult
from .timeline_planner import SegmentRequest, TimelinePlanner, fade_out_start

__all__ = [
    "AssetResolver",
    "generate_session_id",
    "extract_session_id",
    "AudioMixer",
    "AudioMixPlan",
    "TimelinePlanner",
    "SegmentRequest",
    "fade_out_start",
    "FilterGraphBuilder",
    "BuiltGraph",
    "OverlayMode",
    "OverlaySpec",
    "overlay_mode",
    "ProcessExecutor",
    "ProcessResult",
    "SlideshowComposer",
    "select_background_music",
    "SlideshowError",
    "ConfigurationError",
    "FilterGraphError",
    "ProbeError",
    "ToolInvocationError",
    "ExecutableNotFoundError",
    "InvalidFilterGraphError",
    "DiskOrIOError",
    "UnknownToolFailure",
    "OutputValidationError",
]
