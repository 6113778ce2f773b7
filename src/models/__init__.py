# Data models for the slideshow engine
from .timeline import ImageSlot, MediaAsset, MediaKind, Segment, SegmentKind, Timeline, Transition
from .audio import (
    DEFAULT_VOLUME_LIMITS,
    AudioAnalysis,
    AudioQuality,
    AudioRole,
    AudioTrack,
    ClippingAnalysis,
    MixSettings,
    VolumeLimits,
)
from .graph import FilterChain, FilterGraph, FilterStep, InputSpec
from .render import IntroOutroOptions, RenderJob, RenderOptions

__all__ = [
    "MediaAsset",
    "MediaKind",
    "SegmentKind",
    "Segment",
    "ImageSlot",
    "Transition",
    "Timeline",
    "AudioRole",
    "AudioTrack",
    "AudioQuality",
    "AudioAnalysis",
    "ClippingAnalysis",
    "MixSettings",
    "VolumeLimits",
    "DEFAULT_VOLUME_LIMITS",
    "FilterStep",
    "FilterChain",
    "FilterGraph",
    "InputSpec",
    "IntroOutroOptions",
    "RenderOptions",
    "RenderJob",
]
