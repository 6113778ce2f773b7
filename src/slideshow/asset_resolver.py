"""Session-scoped file naming for temp and output assets.

Every file belonging to one logical run embeds the same SessionId
(``<base36 ms timestamp>-<8 hex chars>``), e.g. ``image-1-lx2k9q1a-3f9c0b12.jpg``.
Concurrent renders therefore never write the same path, and all files of a
run can be found and removed as a set.
"""

import logging
import re
import secrets
import time
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

SESSION_RANDOM_BYTES = 4
_SESSION_IN_NAME = re.compile(r"-([a-z0-9]+-[a-f0-9]{8})\.")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_session_id() -> str:
    """Create a new SessionId from the clock plus 32 random bits."""
    timestamp = _to_base36(int(time.time() * 1000))
    return f"{timestamp}-{secrets.token_hex(SESSION_RANDOM_BYTES)}"


def extract_session_id(file_path: PathLike) -> Optional[str]:
    """Recover the SessionId embedded in a generated file name."""
    match = _SESSION_IN_NAME.search(Path(file_path).name)
    return match.group(1) if match else None


def create_temp_file_path(
    temp_dir: PathLike, filename: str, session_id: Optional[str] = None
) -> Path:
    """``voiceover.mp3`` -> ``<temp_dir>/voiceover-<session>.mp3``."""
    session_id = session_id or generate_session_id()
    name = Path(filename)
    return Path(temp_dir) / f"{name.stem}-{session_id}{name.suffix}"


def create_temp_file_paths(
    temp_dir: PathLike, filenames: list[str], session_id: Optional[str] = None
) -> tuple[dict[str, Path], str]:
    session_id = session_id or generate_session_id()
    paths = {f: create_temp_file_path(temp_dir, f, session_id) for f in filenames}
    return paths, session_id


def create_image_file_paths(
    temp_dir: PathLike, count: int, session_id: Optional[str] = None
) -> tuple[list[Path], str]:
    session_id = session_id or generate_session_id()
    paths = [
        create_temp_file_path(temp_dir, f"image-{i}.jpg", session_id)
        for i in range(1, count + 1)
    ]
    return paths, session_id


def create_voiceover_file_paths(
    temp_dir: PathLike,
    include_main: bool = True,
    include_short: bool = False,
    include_intro: bool = False,
    session_id: Optional[str] = None,
) -> tuple[dict[str, Path], str]:
    session_id = session_id or generate_session_id()
    paths: dict[str, Path] = {}
    if include_main:
        paths["main"] = create_temp_file_path(temp_dir, "voiceover.mp3", session_id)
    if include_short:
        paths["short"] = create_temp_file_path(temp_dir, "short-voiceover.mp3", session_id)
    if include_intro:
        paths["intro"] = create_temp_file_path(temp_dir, "intro-voiceover.mp3", session_id)
    return paths, session_id


def create_output_file_paths(
    output_dir: PathLike,
    base_name: str,
    include_short: bool = False,
    include_thumbnails: bool = True,
    session_id: Optional[str] = None,
) -> tuple[dict[str, Path], str]:
    session_id = session_id or generate_session_id()
    out = Path(output_dir)
    paths = {"video": out / f"{base_name}-{session_id}.mp4"}
    if include_short:
        paths["short_video"] = out / f"{base_name}-short-{session_id}.mp4"
    if include_thumbnails:
        paths["thumbnail"] = out / f"{base_name}-thumbnail-{session_id}.jpg"
        if include_short:
            paths["short_thumbnail"] = out / f"{base_name}-short-thumb-{session_id}.jpg"
    return paths, session_id


def create_session_temp_dir(
    base_dir: PathLike, session_id: Optional[str] = None
) -> tuple[Path, str]:
    """Path of a per-session directory. The directory is not created."""
    session_id = session_id or generate_session_id()
    return Path(base_dir) / f"session-{session_id}", session_id


def find_session_files(directory: PathLike, session_id: str) -> list[Path]:
    """All files directly under ``directory`` that belong to ``session_id``."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and extract_session_id(p) == session_id
    )


def cleanup_session_files(directory: PathLike, session_id: str) -> int:
    """Delete every file of one session. Returns the number removed."""
    removed = 0
    for path in find_session_files(directory, session_id):
        path.unlink(missing_ok=True)
        removed += 1
    if removed:
        logger.debug(f"Removed {removed} files for session {session_id} in {directory}")
    return removed


class AssetResolver:
    """Resolves all temp and output paths of one logical run."""

    def __init__(
        self,
        temp_dir: PathLike = "temp",
        output_dir: PathLike = "output",
        session_id: Optional[str] = None,
    ):
        self.temp_dir = Path(temp_dir)
        self.output_dir = Path(output_dir)
        self.session_id = session_id or generate_session_id()

    def temp_path(self, filename: str) -> Path:
        return create_temp_file_path(self.temp_dir, filename, self.session_id)

    def image_paths(self, count: int) -> list[Path]:
        return create_image_file_paths(self.temp_dir, count, self.session_id)[0]

    def voiceover_paths(
        self, include_short: bool = False, include_intro: bool = False
    ) -> dict[str, Path]:
        return create_voiceover_file_paths(
            self.temp_dir,
            include_short=include_short,
            include_intro=include_intro,
            session_id=self.session_id,
        )[0]

    def output_paths(
        self, base_name: str, include_short: bool = False, include_thumbnails: bool = True
    ) -> dict[str, Path]:
        return create_output_file_paths(
            self.output_dir,
            base_name,
            include_short=include_short,
            include_thumbnails=include_thumbnails,
            session_id=self.session_id,
        )[0]

    def qr_code_path(self, variant: str = "qr-code") -> Path:
        return self.temp_path(f"{variant}.png")

    def status_path(self, status_file: Optional[PathLike]) -> Optional[Path]:
        """``status.json`` -> ``status-<session>.json`` in the same directory."""
        if not status_file:
            return None
        status_file = Path(status_file)
        return create_temp_file_path(status_file.parent, status_file.name, self.session_id)

    def owns(self, path: PathLike) -> bool:
        """True if ``path`` was generated for this run."""
        return extract_session_id(path) == self.session_id

    def ensure_dirs(self) -> None:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def cleanup_temp(self) -> int:
        """Remove this run's temp files. Output files are kept."""
        return cleanup_session_files(self.temp_dir, self.session_id)
