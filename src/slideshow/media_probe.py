"""ffprobe wrappers for audio and video metadata."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Union

from slideshow.errors import ProbeError

logger = logging.getLogger(__name__)


async def probe_media(
    path: Union[str, Path],
    ffprobe_path: str = "ffprobe",
    select_streams: Optional[str] = None,
) -> dict:
    """Run ffprobe and return its parsed JSON output.

    Args:
        path: Media file to inspect
        ffprobe_path: ffprobe executable
        select_streams: Optional stream specifier, e.g. "a:0"

    Returns:
        Dict with "format" and "streams" keys

    Raises:
        ProbeError: If the file is missing, ffprobe cannot be run, exits
            non-zero, or prints something that is not JSON
    """
    path = Path(path)
    if not path.exists():
        raise ProbeError(f"File not found: {path}", path=str(path))

    cmd = [
        ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
    ]
    if select_streams:
        cmd.extend(["-select_streams", select_streams])
    cmd.append(str(path))

    logger.debug(f"Probing {path.name}")
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        raise ProbeError(f"ffprobe not found at '{ffprobe_path}'", path=str(path))

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        detail = stderr.decode(errors="replace").strip()[-500:]
        raise ProbeError(
            f"ffprobe failed for {path.name} (exit {process.returncode}): {detail}",
            path=str(path),
        )

    try:
        return json.loads(stdout.decode(errors="replace") or "{}")
    except json.JSONDecodeError as e:
        raise ProbeError(f"Unreadable ffprobe output for {path.name}: {e}", path=str(path))


def _first_stream(metadata: dict, codec_type: str) -> Optional[dict]:
    for stream in metadata.get("streams") or []:
        if stream.get("codec_type") == codec_type:
            return stream
    return None


def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _parse_frame_rate(rate: Optional[str]) -> float:
    """'30000/1001' -> 29.97"""
    if not rate:
        return 0.0
    if "/" in rate:
        num, den = rate.split("/", 1)
        den_value = _to_float(den)
        return round(_to_float(num) / den_value, 3) if den_value else 0.0
    return _to_float(rate)


async def get_audio_duration(path: Union[str, Path], ffprobe_path: str = "ffprobe") -> float:
    """Duration of an audio file in seconds.

    Raises:
        ProbeError: If probing fails or the duration is missing or non-positive
    """
    metadata = await probe_media(path, ffprobe_path)
    duration = _to_float((metadata.get("format") or {}).get("duration"))
    if duration <= 0:
        stream = _first_stream(metadata, "audio") or {}
        duration = _to_float(stream.get("duration"))
    if duration <= 0:
        raise ProbeError(f"Could not determine duration of {Path(path).name}", path=str(path))
    return duration


async def get_video_info(path: Union[str, Path], ffprobe_path: str = "ffprobe") -> dict:
    """Basic properties of a rendered video file."""
    metadata = await probe_media(path, ffprobe_path)
    video = _first_stream(metadata, "video")
    if video is None:
        raise ProbeError(f"No video stream found in {Path(path).name}", path=str(path))
    audio = _first_stream(metadata, "audio")
    fmt = metadata.get("format") or {}

    return {
        "duration": _to_float(fmt.get("duration")),
        "size": _to_int(fmt.get("size")),
        "bitrate": _to_int(fmt.get("bit_rate")),
        "width": _to_int(video.get("width")),
        "height": _to_int(video.get("height")),
        "fps": _parse_frame_rate(video.get("r_frame_rate")),
        "video_codec": video.get("codec_name"),
        "audio_codec": audio.get("codec_name") if audio else None,
        "has_audio": audio is not None,
    }
