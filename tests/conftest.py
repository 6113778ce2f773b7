"""Shared pytest fixtures for slideshow engine tests."""

import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_images(temp_dir) -> list[Path]:
    """Three placeholder image files (content is never decoded)."""
    images = []
    for i in range(1, 4):
        image = temp_dir / f"product-{i}.jpg"
        image.write_bytes(b"\xff\xd8\xff" + b"\x00" * 64)
        images.append(image)
    return images


@pytest.fixture
def fake_voiceover(temp_dir) -> Path:
    voice = temp_dir / "voiceover.mp3"
    voice.write_bytes(b"ID3" + b"\x00" * 128)
    return voice


@pytest.fixture
def fake_music(temp_dir) -> Path:
    music_dir = temp_dir / "media"
    music_dir.mkdir()
    music = music_dir / "calm.wav"
    music.write_bytes(b"RIFF" + b"\x00" * 128)
    return music


@pytest.fixture
def branding_images(temp_dir) -> tuple[Path, Path]:
    """Intro banner and outro profile images."""
    banner = temp_dir / "banner.jpg"
    profile = temp_dir / "profile.jpg"
    banner.write_bytes(b"\xff\xd8\xff" + b"\x00" * 64)
    profile.write_bytes(b"\xff\xd8\xff" + b"\x00" * 64)
    return banner, profile


@pytest.fixture
def sample_config(temp_dir, fake_music, branding_images) -> dict:
    """Composer configuration pointing at the temp directory."""
    banner, profile = branding_images
    return {
        "ffmpeg_path": "ffmpeg",
        "ffprobe_path": "ffprobe",
        "temp_dir": str(temp_dir / "temp"),
        "output_dir": str(temp_dir / "output"),
        "background_music_dir": str(fake_music.parent),
        "background_music_pattern": "*.wav",
        "intro_image_path": str(banner),
        "outro_image_path": str(profile),
    }


@pytest.fixture
def audio_probe_payload():
    """Factory for ffprobe JSON describing an audio-only file."""

    def make(
        duration: float = 30.0,
        sample_rate: int = 44100,
        channels: int = 2,
        bit_rate: int = 192000,
    ) -> dict:
        return {
            "streams": [
                {
                    "codec_type": "audio",
                    "codec_name": "mp3",
                    "sample_rate": str(sample_rate),
                    "channels": channels,
                    "bits_per_sample": 0,
                }
            ],
            "format": {
                "duration": f"{duration:.6f}",
                "bit_rate": str(bit_rate),
                "size": "480000",
            },
        }

    return make
