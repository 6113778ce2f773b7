"""Unit tests for AudioMixer volume safety and audio chain generation."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from models import AudioQuality, AudioRole, VolumeLimits
from slideshow.audio_mixer import BACKGROUND_LABEL, MIX_LABEL, VOICE_LABEL, AudioMixer
from slideshow.errors import ProbeError
from slideshow.timeline_planner import SegmentRequest, TimelinePlanner


@pytest.fixture
def mixer():
    return AudioMixer()


@pytest.fixture
def branded_timeline():
    """5s intro, 30s main, 5s outro."""
    return TimelinePlanner().plan(
        [Path("a.jpg"), Path("b.jpg"), Path("c.jpg")],
        voiceover_duration=30.0,
        intro=SegmentRequest(duration=5.0, volume=0.4),
        outro=SegmentRequest(duration=5.0, volume=0.4),
    )


@pytest.fixture
def plain_timeline():
    return TimelinePlanner().plan([Path("a.jpg")], voiceover_duration=12.0)


@pytest.mark.unit
class TestNormalizeVolume:
    @pytest.mark.parametrize(
        "role,volume,expected",
        [
            (AudioRole.VOICE, 1.5, 1.0),
            (AudioRole.VOICE, 0.7, 0.7),
            (AudioRole.INTRO, 0.9, 0.4),
            (AudioRole.OUTRO, 0.9, 0.4),
            (AudioRole.BACKGROUND, 0.8, 0.2),
            (AudioRole.BACKGROUND, 0.01, 0.05),
            (AudioRole.VOICE, -2, 0.05),
        ],
    )
    def test_clamps_to_role_bounds(self, mixer, role, volume, expected):
        assert mixer.normalize_volume(volume, role) == pytest.approx(expected)

    @pytest.mark.parametrize("bad", ["loud", None, float("nan"), float("inf"), True, [0.5]])
    def test_invalid_input_returns_role_default(self, mixer, bad):
        assert mixer.normalize_volume(bad, AudioRole.VOICE) == 1.0
        assert mixer.normalize_volume(bad, AudioRole.BACKGROUND) == 0.2
        assert mixer.normalize_volume(bad, AudioRole.INTRO) == 0.4

    def test_role_given_as_string(self, mixer):
        assert mixer.normalize_volume(0.9, "intro") == 0.4

    @pytest.mark.parametrize("volume", [-1, 0, 0.03, 0.12, 0.5, 3.0])
    def test_idempotent(self, mixer, volume):
        for role in AudioRole:
            once = mixer.normalize_volume(volume, role)
            assert mixer.normalize_volume(once, role) == once

    def test_custom_limits(self):
        mixer = AudioMixer(VolumeLimits(max_background_volume=0.3))
        assert mixer.normalize_volume(0.8, AudioRole.BACKGROUND) == 0.3


@pytest.mark.unit
class TestValidateFadeDuration:
    @pytest.mark.parametrize(
        "value,expected", [(0.2, 1.0), (1.5, 1.5), (2.0, 2.0), (10, 3.0), (-4, 1.0)]
    )
    def test_clamps_to_range(self, mixer, value, expected):
        assert mixer.validate_fade_duration(value) == expected

    @pytest.mark.parametrize("bad", [None, "slow", float("nan")])
    def test_invalid_returns_recommended(self, mixer, bad):
        assert mixer.validate_fade_duration(bad) == 2.0


@pytest.mark.unit
class TestCheckAudioClipping:
    def test_sum_at_threshold_is_safe(self, mixer):
        analysis = mixer.check_audio_clipping({"voice": 1.0, "background": 0.2})
        assert analysis.total_volume == pytest.approx(1.2)
        assert analysis.will_clip is False
        assert analysis.recommendation is None

    def test_float_noise_at_threshold_is_safe(self, mixer):
        # 1.1 + 0.1 is 1.2000000000000002 in binary floating point
        analysis = mixer.check_audio_clipping({"voice": 1.1, "background": 0.1})
        assert analysis.will_clip is False

    def test_over_threshold_recommends_ceilings(self, mixer):
        analysis = mixer.check_audio_clipping({"voice": 1.0, "background": 0.8})
        assert analysis.total_volume == pytest.approx(1.8)
        assert analysis.will_clip is True
        assert analysis.safe_threshold == 1.2
        assert analysis.recommendation["background"] <= 0.2
        assert analysis.recommendation["voice"] == 1.0

    def test_three_tracks(self, mixer):
        analysis = mixer.check_audio_clipping(
            {AudioRole.VOICE: 1.0, AudioRole.INTRO: 0.4, AudioRole.BACKGROUND: 0.2}
        )
        assert analysis.will_clip is True
        assert analysis.recommendation == {"voice": 1.0, "intro": 0.4, "background": 0.2}

    def test_non_numeric_counts_as_zero(self, mixer):
        analysis = mixer.check_audio_clipping({"voice": "loud", "background": 0.2})
        assert analysis.total_volume == pytest.approx(0.2)

    def test_to_dict(self, mixer):
        data = mixer.check_audio_clipping({"voice": 0.5}).to_dict()
        assert data == {
            "total_volume": 0.5,
            "will_clip": False,
            "safe_threshold": 1.2,
            "recommendation": None,
        }


@pytest.mark.unit
class TestCreateSafeAudioFilter:
    def test_voice_only_maps_voice_chain(self, mixer, plain_timeline):
        plan = mixer.create_safe_audio_filter(plain_timeline, voice_input="1:a")

        assert plan.has_background is False
        assert plan.output_label == VOICE_LABEL
        assert len(plan.chains) == 1
        chain = plan.chains[0]
        assert chain.inputs == ["1:a"]
        assert chain.outputs == [VOICE_LABEL]
        assert [s.name for s in chain.steps] == ["volume", "apad", "atrim"]

    def test_background_chain_and_mix(self, mixer, plain_timeline):
        plan = mixer.create_safe_audio_filter(
            plain_timeline, voice_input="1:a", background_input="2:a"
        )

        assert plan.output_label == MIX_LABEL
        voice, background, mix = plan.chains
        assert background.inputs == ["2:a"]
        assert background.outputs == [BACKGROUND_LABEL]
        assert [s.name for s in background.steps] == [
            "aloop", "atrim", "asetpts", "afade", "afade", "volume",
        ]
        assert mix.inputs == [VOICE_LABEL, BACKGROUND_LABEL]
        assert mix.to_string() == (
            "[voice][bg]amix=inputs=2:duration=first:dropout_transition=2:normalize=0[aout]"
        )

    def test_background_loops_indefinitely(self, mixer, plain_timeline):
        plan = mixer.create_safe_audio_filter(
            plain_timeline, voice_input="1:a", background_input="2:a"
        )
        assert plan.chains[1].steps[0].to_string() == "aloop=loop=-1:size=2e+09"

    def test_fade_envelope(self, mixer, plain_timeline):
        plan = mixer.create_safe_audio_filter(
            plain_timeline,
            voice_input="1:a",
            background_input="2:a",
            fade_in_duration=1.5,
            fade_out_duration=10,
        )
        fade_in, fade_out = [s for s in plan.chains[1].steps if s.name == "afade"]
        assert fade_in.params == {"t": "in", "st": 0, "d": 1.5}
        # Fade-out clamped to 3s and ends with the 12s timeline
        assert fade_out.params["d"] == 3.0
        assert fade_out.params["st"] == pytest.approx(9.0)

    def test_normalized_settings(self, mixer, plain_timeline):
        plan = mixer.create_safe_audio_filter(
            plain_timeline,
            voice_input="1:a",
            background_input="2:a",
            voice_volume=3.0,
            background_volume=0.8,
            intro_volume="bad",
        )
        assert plan.settings.voice_volume == 1.0
        assert plan.settings.background_volume == 0.2
        assert plan.settings.intro_volume == 0.4
        assert plan.is_clipping_safe

    def test_voice_delayed_to_main_start(self, mixer, branded_timeline):
        plan = mixer.create_safe_audio_filter(
            branded_timeline, voice_input="5:a", background_input="6:a"
        )
        voice = plan.chains[0]
        delay = next(s for s in voice.steps if s.name == "adelay")
        assert delay.params == {"delays": 5000, "all": 1}
        pad = next(s for s in voice.steps if s.name == "apad")
        assert pad.params["whole_dur"] == pytest.approx(40.0)

    def test_per_segment_background_levels(self, mixer, branded_timeline):
        plan = mixer.create_safe_audio_filter(
            branded_timeline,
            voice_input="5:a",
            background_input="6:a",
            background_volume=0.15,
            intro_volume=0.4,
            outro_volume=0.3,
        )
        volume = plan.chains[1].steps[-1]
        assert volume.params["eval"] == "frame"
        assert volume.params["volume"] == "if(lt(t,5.000),0.4,if(lt(t,35.000),0.15,0.3))"
        assert "volume='if(lt(t,5.000)" in volume.to_string()

    def test_peak_window_excludes_voice_from_intro(self, mixer, branded_timeline):
        plan = mixer.create_safe_audio_filter(
            branded_timeline, voice_input="5:a", background_input="6:a", background_volume=0.2
        )
        assert plan.clipping.total_volume == pytest.approx(1.2)
        assert plan.clipping.will_clip is False

    def test_apply_recommendation_lowers_background(self, plain_timeline):
        mixer = AudioMixer(VolumeLimits(max_voice_volume=1.15, max_background_volume=0.3))
        plan = mixer.create_safe_audio_filter(
            plain_timeline,
            voice_input="1:a",
            background_input="2:a",
            voice_volume=1.15,
            background_volume=0.3,
            apply_recommendation=True,
        )
        assert plan.settings.background_volume == pytest.approx(0.05)
        assert plan.clipping.will_clip is False

    def test_clipping_reported_without_applying(self, plain_timeline):
        mixer = AudioMixer(VolumeLimits(max_voice_volume=1.15, max_background_volume=0.3))
        plan = mixer.create_safe_audio_filter(
            plain_timeline,
            voice_input="1:a",
            background_input="2:a",
            voice_volume=1.15,
            background_volume=0.3,
        )
        assert plan.clipping.will_clip is True
        assert plan.settings.background_volume == 0.3


@pytest.mark.unit
class TestSmoothVolumeTransition:
    def test_linear_points(self, mixer):
        points = mixer.create_smooth_volume_transition(0.0, 0.2, 2.0, steps=4)
        assert points == [(0.0, 0.0), (0.5, 0.05), (1.0, 0.1), (1.5, 0.15), (2.0, 0.2)]

    def test_rapid_change_warns(self, mixer, caplog):
        with caplog.at_level("WARNING"):
            points = mixer.create_smooth_volume_transition(0.0, 1.0, 1.0, steps=2)
        assert points[-1] == (1.0, 1.0)
        assert "too rapid" in caplog.text

    def test_zero_duration(self, mixer):
        assert mixer.create_smooth_volume_transition(0.1, 0.3, 0) == [(0.0, 0.3)]


@pytest.mark.unit
class TestAnalyzeAudioFile:
    @pytest.mark.asyncio
    async def test_good_quality(self, mixer, audio_probe_payload):
        payload = audio_probe_payload(duration=30.0)
        with patch("slideshow.audio_mixer.probe_media", new=AsyncMock(return_value=payload)):
            analysis = await mixer.analyze_audio_file("voice.mp3")

        assert analysis.quality == AudioQuality.GOOD
        assert analysis.issues == []
        assert analysis.duration == pytest.approx(30.0)
        assert analysis.sample_rate == 44100
        assert analysis.channels == 2
        assert analysis.codec == "mp3"

    @pytest.mark.asyncio
    async def test_acceptable_with_two_issues(self, mixer, audio_probe_payload):
        payload = audio_probe_payload(duration=5.0, sample_rate=22050)
        with patch("slideshow.audio_mixer.probe_media", new=AsyncMock(return_value=payload)):
            analysis = await mixer.analyze_audio_file("voice.mp3")

        assert analysis.quality == AudioQuality.ACCEPTABLE
        assert len(analysis.issues) == 2

    @pytest.mark.asyncio
    async def test_poor_with_many_issues(self, mixer, audio_probe_payload):
        payload = audio_probe_payload(duration=5.0, sample_rate=22050, channels=6, bit_rate=64000)
        with patch("slideshow.audio_mixer.probe_media", new=AsyncMock(return_value=payload)):
            analysis = await mixer.analyze_audio_file("voice.mp3")

        assert analysis.quality == AudioQuality.POOR
        assert len(analysis.issues) == 4
        assert analysis.to_dict()["quality"] == "poor"

    @pytest.mark.asyncio
    async def test_missing_audio_stream_raises(self, mixer):
        payload = {"streams": [], "format": {"duration": "10"}}
        with patch("slideshow.audio_mixer.probe_media", new=AsyncMock(return_value=payload)):
            with pytest.raises(ProbeError, match="No audio stream"):
                await mixer.analyze_audio_file("silent.mp4")

    @pytest.mark.asyncio
    async def test_probe_failure_propagates(self, mixer):
        with patch(
            "slideshow.audio_mixer.probe_media",
            new=AsyncMock(side_effect=ProbeError("ffprobe failed", path="x.mp3")),
        ):
            with pytest.raises(ProbeError):
                await mixer.analyze_audio_file("x.mp3")
