"""Exception hierarchy for the slideshow engine.

Every error carries the pipeline ``stage`` it came from (planning, mixing,
graph-building, execution) so user-facing messages can name where a render
failed. Clipping risk is reported as a ``ClippingAnalysis`` value, never raised.
"""

from typing import Optional

STAGE_PLANNING = "planning"
STAGE_MIXING = "mixing"
STAGE_GRAPH = "graph-building"
STAGE_EXECUTION = "execution"


class SlideshowError(Exception):
    """Base exception for all slideshow engine errors."""

    stage: str = "composition"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage:
            self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {super().__str__()}"


class ConfigurationError(SlideshowError):
    """Invalid inputs or options. Raised before any subprocess is spawned."""

    stage = STAGE_PLANNING


class FilterGraphError(SlideshowError):
    """The planned filter graph has broken wiring."""

    stage = STAGE_GRAPH

    def __init__(self, message: str, problems: Optional[list[str]] = None):
        super().__init__(message)
        self.problems = problems or []


class ProbeError(SlideshowError):
    """Metadata extraction via ffprobe failed."""

    stage = STAGE_MIXING

    def __init__(self, message: str, path: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message, stage=stage)
        self.path = path


# =============================================================================
# Execution errors
# =============================================================================


class ToolInvocationError(SlideshowError):
    """The external media tool could not be run or exited non-zero."""

    stage = STAGE_EXECUTION

    def __init__(
        self,
        message: str,
        command: Optional[list[str]] = None,
        exit_code: Optional[int] = None,
        diagnostic_tail: str = "",
    ):
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.diagnostic_tail = diagnostic_tail


class ExecutableNotFoundError(ToolInvocationError):
    """The ffmpeg/ffprobe executable is not installed or not on PATH."""


class InvalidFilterGraphError(ToolInvocationError):
    """FFmpeg rejected the filter graph."""


class DiskOrIOError(ToolInvocationError):
    """FFmpeg failed reading inputs or writing the output."""


class UnknownToolFailure(ToolInvocationError):
    """Non-zero exit without a recognized diagnostic."""


class OutputValidationError(SlideshowError):
    """Zero exit code but the output file is missing or empty."""

    stage = STAGE_EXECUTION

    def __init__(self, message: str, output_path: Optional[str] = None):
        super().__init__(message)
        self.output_path = output_path
