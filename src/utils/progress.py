"""Progress tracking and status reporting for slideshow renders."""

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Render pipeline stages and their share of the work, in order
RENDER_STAGES = {
    "validate": 1,
    "planning": 1,
    "mixing": 1,
    "graph": 1,
    "render": 100,
}

# (step, percent, message)
ProgressCallback = Callable[[str, float, str], None]


@dataclass
class ProcessingStage:
    """Represents a stage in the render pipeline."""

    name: str
    total_items: int
    completed_items: float = 0
    status: str = "pending"  # pending, in_progress, completed, failed
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @property
    def progress_percent(self) -> float:
        """Calculate progress percentage."""
        if self.total_items == 0:
            return 0.0
        return (self.completed_items / self.total_items) * 100

    @property
    def elapsed_time(self) -> float:
        """Calculate elapsed time in seconds."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time else time.time()
        return end - self.start_time

    @property
    def eta_seconds(self) -> Optional[float]:
        """Estimate time remaining in seconds."""
        if self.completed_items == 0 or self.start_time is None:
            return None

        elapsed = self.elapsed_time
        if elapsed <= 0:
            return None
        rate = self.completed_items / elapsed
        remaining_items = self.total_items - self.completed_items

        if rate > 0:
            return remaining_items / rate
        return None


class ProcessingStatus:
    """Tracks the stages of one render and reports progress.

    Notifications go to an optional ``(step, percent, message)`` callback,
    where ``percent`` is the overall progress of the render. When a status
    file is configured, every update is also exported as JSON.

    Example usage:
        status = ProcessingStatus("promo-lx2k9q1a-3f9c0b12", callback=print)
        status.start_stage("planning")
        status.complete_stage("planning")
        status.update_stage("render", completed=42, message="Encoding")
    """

    def __init__(
        self,
        session_id: str,
        output_path: Optional[str] = None,
        status_file: Optional[str] = None,
        callback: Optional[ProgressCallback] = None,
        stages: Optional[dict[str, int]] = None,
    ):
        self.session_id = session_id
        self.output_path = output_path
        self.status_file = Path(status_file) if status_file else None
        self.callback = callback

        self.stages: dict[str, ProcessingStage] = {
            name: ProcessingStage(name=name, total_items=items)
            for name, items in (stages or RENDER_STAGES).items()
        }
        self.start_time = time.time()
        self.end_time: Optional[float] = None
        self.error_message: Optional[str] = None
        self.current_stage: Optional[str] = None

        logger.debug(f"Initialized progress tracking for session {session_id}")

    def start_stage(self, stage_name: str, message: str = ""):
        """Mark a stage as started."""
        if stage_name not in self.stages:
            logger.warning(f"Stage {stage_name} not registered, auto-registering")
            self.stages[stage_name] = ProcessingStage(name=stage_name, total_items=1)

        stage = self.stages[stage_name]
        stage.status = "in_progress"
        stage.start_time = time.time()
        self.current_stage = stage_name

        logger.debug(f"Started stage: {stage_name}")
        self._notify_update(message or f"Starting {stage_name}")

    def update_stage(
        self,
        stage_name: str,
        completed: Optional[float] = None,
        increment: float = 0,
        message: str = "",
    ):
        """Update progress for a stage.

        Args:
            stage_name: Name of the stage to update
            completed: Set completed items to this value (absolute)
            increment: Increment completed items by this amount (relative)
            message: Human-readable detail forwarded to the callback
        """
        if stage_name not in self.stages:
            logger.warning(f"Cannot update unregistered stage: {stage_name}")
            return

        stage = self.stages[stage_name]
        if completed is not None:
            stage.completed_items = min(completed, stage.total_items)
        else:
            stage.completed_items = min(stage.completed_items + increment, stage.total_items)

        self._notify_update(message)

    def complete_stage(self, stage_name: str, message: str = ""):
        """Mark a stage as completed."""
        if stage_name not in self.stages:
            logger.warning(f"Cannot complete unregistered stage: {stage_name}")
            return

        stage = self.stages[stage_name]
        stage.status = "completed"
        stage.completed_items = stage.total_items
        stage.end_time = time.time()

        logger.debug(f"Completed stage: {stage_name} ({stage.elapsed_time:.1f}s)")
        self._notify_update(message or f"Finished {stage_name}")

    def fail_stage(self, stage_name: str, error: str):
        """Mark a stage as failed."""
        if stage_name not in self.stages:
            logger.warning(f"Cannot fail unregistered stage: {stage_name}")
            return

        stage = self.stages[stage_name]
        stage.status = "failed"
        stage.end_time = time.time()
        self.error_message = error

        logger.error(f"Failed stage: {stage_name} - {error}")
        self._notify_update(error)

    def complete_processing(self):
        """Mark the render as complete."""
        self.end_time = time.time()
        logger.info(f"Render complete in {self.end_time - self.start_time:.1f}s")
        self._notify_update("Complete")

    @property
    def overall_progress(self) -> float:
        """Calculate overall progress percentage across all stages."""
        total_items = sum(stage.total_items for stage in self.stages.values())
        if total_items == 0:
            return 0.0
        completed_items = sum(stage.completed_items for stage in self.stages.values())
        return (completed_items / total_items) * 100

    @property
    def overall_eta_seconds(self) -> Optional[float]:
        """Estimate overall time remaining in seconds."""
        total_items = sum(stage.total_items for stage in self.stages.values())
        completed_items = sum(stage.completed_items for stage in self.stages.values())
        if completed_items == 0:
            return None

        elapsed = time.time() - self.start_time
        if elapsed <= 0:
            return None
        rate = completed_items / elapsed
        return (total_items - completed_items) / rate if rate > 0 else None

    @property
    def is_complete(self) -> bool:
        return all(stage.status == "completed" for stage in self.stages.values())

    @property
    def has_failed(self) -> bool:
        return (
            any(stage.status == "failed" for stage in self.stages.values())
            or self.error_message is not None
        )

    def to_dict(self) -> dict:
        """Convert status to dictionary for JSON export."""
        return {
            "session_id": self.session_id,
            "output_path": self.output_path,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "elapsed_seconds": time.time() - self.start_time,
            "current_stage": self.current_stage,
            "overall_progress": round(self.overall_progress, 2),
            "overall_eta_seconds": self.overall_eta_seconds,
            "is_complete": self.is_complete,
            "has_failed": self.has_failed,
            "error_message": self.error_message,
            "stages": {
                name: {
                    "name": stage.name,
                    "status": stage.status,
                    "total_items": stage.total_items,
                    "completed_items": stage.completed_items,
                    "progress_percent": round(stage.progress_percent, 2),
                    "elapsed_seconds": stage.elapsed_time,
                    "eta_seconds": stage.eta_seconds,
                }
                for name, stage in self.stages.items()
            },
            "timestamp": datetime.now().isoformat(),
        }

    def write_status_file(self):
        """Write current status to JSON file for external monitoring."""
        if self.status_file is None:
            return
        try:
            with open(self.status_file, "w") as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            logger.warning(f"Failed to write status file: {e}")

    def _notify_update(self, message: str = ""):
        """Notify callback and update status file."""
        self.write_status_file()

        if self.callback:
            try:
                self.callback(self.current_stage or "", round(self.overall_progress, 1), message)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")


def format_eta(seconds: Optional[float]) -> str:
    """Format ETA in human-readable format.

    Returns:
        Formatted string (e.g., "2m 30s", "45s", "1h 5m")
    """
    if seconds is None:
        return "calculating..."

    if seconds < 60:
        return f"{int(seconds)}s"
    elif seconds < 3600:
        minutes = int(seconds / 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds / 3600)
        minutes = int((seconds % 3600) / 60)
        return f"{hours}h {minutes}m"
