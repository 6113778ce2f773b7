"""Unit tests for TimelinePlanner segment timing and crossfade offsets."""

import random
from pathlib import Path

import pytest

from models import SegmentKind
from slideshow.errors import ConfigurationError
from slideshow.timeline_planner import (
    XFADE_EFFECTS,
    SegmentRequest,
    TimelinePlanner,
    fade_out_start,
)

IMAGES = [Path(f"/images/product-{i}.jpg") for i in range(1, 6)]


@pytest.fixture
def planner():
    return TimelinePlanner(transition_duration=0.5, transition_effect="fade")


@pytest.mark.unit
class TestSegmentLayout:
    """Segment list and total duration."""

    def test_single_image_without_branding(self, planner):
        timeline = planner.plan(IMAGES[:1], voiceover_duration=12.0)

        assert len(timeline.segments) == 1
        assert timeline.segments[0].kind == SegmentKind.MAIN
        assert timeline.segments[0].duration == pytest.approx(12.0)
        assert timeline.total_duration == pytest.approx(12.0)
        assert timeline.main.transitions == []

    def test_intro_main_outro_total(self, planner):
        timeline = planner.plan(
            IMAGES[:3],
            voiceover_duration=30.0,
            intro=SegmentRequest(duration=5.0, volume=0.4),
            outro=SegmentRequest(duration=5.0, volume=0.4),
        )

        kinds = [s.kind for s in timeline.segments]
        assert kinds == [SegmentKind.INTRO, SegmentKind.MAIN, SegmentKind.OUTRO]
        assert timeline.total_duration == pytest.approx(40.0)
        assert timeline.main_duration == pytest.approx(30.0)
        assert len(timeline.main.transitions) == 2

    def test_segment_durations_sum_to_total(self, planner):
        timeline = planner.plan(
            IMAGES,
            voiceover_duration=47.3,
            intro=SegmentRequest(duration=3.5),
            outro=SegmentRequest(duration=6.0),
        )
        assert sum(s.duration for s in timeline.segments) == pytest.approx(
            timeline.total_duration, abs=0.05
        )

    def test_main_segment_offsets(self, planner):
        timeline = planner.plan(
            IMAGES[:2],
            voiceover_duration=10.0,
            intro=SegmentRequest(duration=4.0),
        )
        assert timeline.main_start == pytest.approx(4.0)
        assert timeline.main_end == pytest.approx(14.0)

    def test_branding_volume_levels(self, planner):
        timeline = planner.plan(
            IMAGES[:2],
            voiceover_duration=10.0,
            intro=SegmentRequest(duration=5.0, volume=0.3),
            outro=SegmentRequest(duration=5.0, volume=0.25),
            background_volume=0.15,
        )
        assert timeline.segment(SegmentKind.INTRO).volume_level == 0.3
        assert timeline.main.volume_level == 0.15
        assert timeline.segment(SegmentKind.OUTRO).volume_level == 0.25

    def test_branding_images_are_referenced(self, planner):
        banner = Path("/media/banner.jpg")
        timeline = planner.plan(
            IMAGES[:1],
            voiceover_duration=8.0,
            intro=SegmentRequest(duration=5.0, image=banner),
            outro=SegmentRequest(duration=5.0),
        )
        assert timeline.segment(SegmentKind.INTRO).image_refs == [banner]
        assert timeline.segment(SegmentKind.OUTRO).image_refs == []


@pytest.mark.unit
class TestInvalidBrandingDurations:
    """Invalid intro/outro durations fall back to 5.0s without raising."""

    @pytest.mark.parametrize("value", [-1, 0, "abc", None, float("nan"), True])
    def test_intro_duration_defaults(self, planner, value):
        timeline = planner.plan(
            IMAGES[:1],
            voiceover_duration=12.0,
            intro=SegmentRequest(duration=value),
        )
        assert timeline.intro_duration == pytest.approx(5.0)
        assert timeline.total_duration == pytest.approx(17.0)

    def test_outro_duration_defaults(self, planner):
        timeline = planner.plan(
            IMAGES[:1],
            voiceover_duration=12.0,
            outro=SegmentRequest(duration=-3),
        )
        assert timeline.outro_duration == pytest.approx(5.0)

    def test_numeric_string_duration_is_accepted(self, planner):
        timeline = planner.plan(
            IMAGES[:1],
            voiceover_duration=12.0,
            intro=SegmentRequest(duration="2.5"),
        )
        assert timeline.intro_duration == pytest.approx(2.5)


@pytest.mark.unit
class TestCrossfades:
    """Clip lengths and xfade offsets inside the main segment."""

    def test_crossfades_do_not_change_main_total(self, planner):
        timeline = planner.plan(IMAGES[:3], voiceover_duration=30.0)
        slots = timeline.main.slots

        clip = slots[0].clip_duration
        assert clip == pytest.approx((30.0 + 2 * 0.5) / 3)

        # Last clip ends exactly at the main duration
        last = slots[-1]
        assert last.start + last.clip_duration == pytest.approx(30.0)

    def test_offsets_follow_clip_minus_overlap(self, planner):
        timeline = planner.plan(IMAGES[:4], voiceover_duration=20.0)
        clip = timeline.main.slots[0].clip_duration

        offsets = [t.offset for t in timeline.main.transitions]
        assert offsets == pytest.approx([(i + 1) * (clip - 0.5) for i in range(3)])
        assert all(t.duration == 0.5 for t in timeline.main.transitions)
        assert timeline.main.slots[-1].transition_to_next is None

    def test_transition_shortened_for_short_clips(self):
        planner = TimelinePlanner(transition_duration=2.0)
        timeline = planner.plan(IMAGES[:4], voiceover_duration=4.0)

        for slot in timeline.main.slots:
            transition = slot.transition_to_next
            if transition:
                assert transition.duration <= slot.clip_duration / 2 + 1e-9
        last = timeline.main.slots[-1]
        assert last.start + last.clip_duration == pytest.approx(4.0)

    def test_zero_transition_gives_plain_cuts(self):
        planner = TimelinePlanner(transition_duration=0)
        timeline = planner.plan(IMAGES[:3], voiceover_duration=9.0)

        assert timeline.main.transitions == []
        assert [s.clip_duration for s in timeline.main.slots] == pytest.approx([3.0, 3.0, 3.0])

    def test_random_effect_uses_injected_rng(self):
        first = TimelinePlanner(transition_effect="random", rng=random.Random(7))
        second = TimelinePlanner(transition_effect="random", rng=random.Random(7))

        a = first.plan(IMAGES, voiceover_duration=25.0)
        b = second.plan(IMAGES, voiceover_duration=25.0)

        effects = [t.effect for t in a.main.transitions]
        assert effects == [t.effect for t in b.main.transitions]
        assert all(e in XFADE_EFFECTS for e in effects)

    def test_named_effect_is_used(self):
        planner = TimelinePlanner(transition_effect="dissolve")
        timeline = planner.plan(IMAGES[:3], voiceover_duration=9.0)
        assert {t.effect for t in timeline.main.transitions} == {"dissolve"}


@pytest.mark.unit
class TestDurationSources:
    """Per-image duration from the voiceover or an explicit value."""

    def test_explicit_per_image_duration(self, planner):
        timeline = planner.plan(IMAGES[:4], per_image_duration=3.0)
        assert timeline.main_duration == pytest.approx(12.0)

    def test_voiceover_wins_over_explicit(self, planner):
        timeline = planner.plan(IMAGES[:4], voiceover_duration=10.0, per_image_duration=3.0)
        assert timeline.main_duration == pytest.approx(10.0)

    def test_no_images_raises(self, planner):
        with pytest.raises(ConfigurationError, match="At least one image"):
            planner.plan([], voiceover_duration=10.0)

    @pytest.mark.parametrize("duration", [0, -5, float("inf"), "long"])
    def test_invalid_voiceover_duration_raises(self, planner, duration):
        with pytest.raises(ConfigurationError):
            planner.plan(IMAGES[:2], voiceover_duration=duration)

    def test_missing_duration_source_raises(self, planner):
        with pytest.raises(ConfigurationError):
            planner.plan(IMAGES[:2])

    def test_configuration_error_stage(self, planner):
        with pytest.raises(ConfigurationError) as exc_info:
            planner.plan([], voiceover_duration=1.0)
        assert exc_info.value.stage == "planning"
        assert str(exc_info.value).startswith("[planning]")


@pytest.mark.unit
class TestFadeOutStart:
    @pytest.mark.parametrize(
        "duration,fade,expected",
        [(10.0, 2.0, 8.0), (1.5, 2.0, 0.0), (2.0, 2.0, 0.0), (0.0, 3.0, 0.0)],
    )
    def test_fade_out_start_within_segment(self, duration, fade, expected):
        start = fade_out_start(duration, fade)
        assert start == pytest.approx(expected)
        assert 0.0 <= start <= max(duration, 0.0)
