"""Runs a RenderJob through the ffmpeg executable.

The subprocess lives inside a scoped async context manager that terminates,
waits and finally kills it on every exit path. Failures are classified from a
``ProcessResult`` (exit code plus a bounded stderr tail) into the
``ToolInvocationError`` family. There are no retries and no internal timeout;
a partially written output file is left where it is.
"""

import asyncio
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from models import RenderJob
from slideshow.errors import (
    DiskOrIOError,
    ExecutableNotFoundError,
    InvalidFilterGraphError,
    OutputValidationError,
    ToolInvocationError,
    UnknownToolFailure,
)
from utils.logging import get_logger

logger = get_logger(__name__)

STDERR_TAIL_LINES = 50
TERMINATE_GRACE_SECONDS = 5.0

INVALID_GRAPH_PATTERNS = (
    "No such filter",
    "Error initializing complex filters",
    "Error parsing filterchain",
    "Error parsing a filter description",
    "matches no streams",
    "unconnected output",
    "Invalid stream specifier",
    "Error reinitializing filters",
    "Filter not found",
)

IO_PATTERNS = (
    "No space left on device",
    "Permission denied",
    "Input/output error",
    "No such file or directory",
    "Read-only file system",
    "Disk quota exceeded",
)

ProgressCallback = Callable[[float, str], None]


@dataclass
class ProcessResult:
    """Outcome of one tool invocation."""

    command: list[str]
    exit_code: Optional[int]
    stderr_tail: list[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def diagnostic_tail(self) -> str:
        return "\n".join(self.stderr_tail)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


def classify_failure(result: ProcessResult) -> ToolInvocationError:
    """Map a failed ProcessResult to the matching error type."""
    tail = result.diagnostic_tail
    last_line = result.stderr_tail[-1] if result.stderr_tail else "no diagnostic output"

    if any(p in tail for p in INVALID_GRAPH_PATTERNS):
        error_cls, summary = InvalidFilterGraphError, "ffmpeg rejected the filter graph"
    elif any(p in tail for p in IO_PATTERNS):
        error_cls, summary = DiskOrIOError, "ffmpeg could not read inputs or write the output"
    else:
        error_cls, summary = UnknownToolFailure, "ffmpeg failed"

    return error_cls(
        f"{summary} (exit {result.exit_code}): {last_line}",
        command=result.command,
        exit_code=result.exit_code,
        diagnostic_tail=tail,
    )


def parse_progress_line(line: str) -> Optional[float]:
    """Seconds of output written, from one ``-progress`` key=value line."""
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None
    if key in ("out_time_us", "out_time_ms"):
        # ffmpeg reports microseconds under both keys
        try:
            return int(value) / 1_000_000
        except ValueError:
            return None
    return None


@asynccontextmanager
async def spawn(
    command: list[str], grace_period: float = TERMINATE_GRACE_SECONDS
) -> AsyncIterator[asyncio.subprocess.Process]:
    """Start a subprocess and guarantee it is gone when the block exits.

    Raises:
        ExecutableNotFoundError: The executable does not exist
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        raise ExecutableNotFoundError(
            f"Executable not found: {command[0]}", command=command
        )
    except PermissionError as e:
        raise ExecutableNotFoundError(
            f"Executable not runnable: {command[0]} ({e})", command=command
        )

    try:
        yield process
    finally:
        await _cleanup_process(process, grace_period)


async def _cleanup_process(process: asyncio.subprocess.Process, grace_period: float) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=grace_period)
    except asyncio.TimeoutError:
        logger.warning("process_kill", pid=process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


class ProcessExecutor:
    """Builds the ffmpeg command of a RenderJob and runs it."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", tail_lines: int = STDERR_TAIL_LINES):
        self.ffmpeg_path = ffmpeg_path
        self.tail_lines = tail_lines

    def build_command(self, job: RenderJob) -> list[str]:
        """Full argument vector; inputs keep the builder's positional order."""
        cmd = [
            self.ffmpeg_path,
            "-y",
            "-hide_banner",
            "-nostats",
            "-progress", "pipe:1",
        ]
        for spec in job.inputs:
            cmd.extend(spec.args())

        cmd.extend([
            "-filter_complex", job.filter_graph.serialize(),
            "-map", f"[{job.video_label}]",
            "-map", f"[{job.audio_label}]",
            "-c:v", "libx264",
            "-preset", job.encoder_preset,
            "-crf", str(job.quality_preset),
            "-pix_fmt", "yuv420p",
            "-r", str(job.fps),
            "-c:a", "aac",
            "-b:a", job.audio_bitrate,
            "-ar", str(job.audio_sample_rate),
            "-ac", "2",
            "-t", f"{job.duration:.3f}",
            "-movflags", "+faststart",
            str(job.output_path),
        ])
        return cmd

    async def run(
        self,
        command: list[str],
        duration: Optional[float] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ProcessResult:
        """Run a command to completion and collect its ProcessResult."""
        stderr_tail: deque[str] = deque(maxlen=self.tail_lines)
        started = time.monotonic()

        async with spawn(command) as process:
            await asyncio.gather(
                self._read_progress(process.stdout, duration, progress_callback),
                self._read_stderr(process.stderr, stderr_tail),
            )
            exit_code = await process.wait()

        return ProcessResult(
            command=command,
            exit_code=exit_code,
            stderr_tail=list(stderr_tail),
            elapsed=time.monotonic() - started,
        )

    async def render(
        self,
        job: RenderJob,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        """Execute a render job and validate its output.

        Args:
            job: Complete render job
            progress_callback: Called with (percent, message) while encoding

        Returns:
            Path to the non-empty output file

        Raises:
            ToolInvocationError: ffmpeg missing or exited non-zero
            OutputValidationError: ffmpeg exited 0 but the output is missing or empty
        """
        command = self.build_command(job)
        output = Path(job.output_path)
        output.parent.mkdir(parents=True, exist_ok=True)

        log = logger.bind(output=str(output), duration=round(job.duration, 3))
        log.info("render_started", inputs=len(job.inputs), crf=job.quality_preset)
        log.debug("render_command", command=" ".join(command))

        result = await self.run(command, job.duration, progress_callback)

        if not result.succeeded:
            error = classify_failure(result)
            log.error(
                "render_failed",
                exit_code=result.exit_code,
                error_type=type(error).__name__,
                stderr_tail=result.diagnostic_tail[-1000:],
            )
            raise error

        if not output.exists() or output.stat().st_size == 0:
            log.error("render_output_invalid")
            raise OutputValidationError(
                f"ffmpeg exited successfully but {output} is missing or empty",
                output_path=str(output),
            )

        log.info(
            "render_completed",
            elapsed=round(result.elapsed, 2),
            size=output.stat().st_size,
        )
        if progress_callback:
            progress_callback(100.0, "Render complete")
        return output

    @staticmethod
    async def _read_progress(
        stream: Optional[asyncio.StreamReader],
        duration: Optional[float],
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        if stream is None:
            return
        last_percent = -1.0
        async for raw in stream:
            seconds = parse_progress_line(raw.decode(errors="replace"))
            if seconds is None or not duration or not progress_callback:
                continue
            percent = round(max(0.0, min(99.0, seconds / duration * 100)), 1)
            if percent > last_percent:
                last_percent = percent
                progress_callback(percent, f"Encoding {seconds:.1f}s of {duration:.1f}s")

    @staticmethod
    async def _read_stderr(stream: Optional[asyncio.StreamReader], tail: deque) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode(errors="replace").rstrip()
            if line:
                tail.append(line)
