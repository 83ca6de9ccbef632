"""Explicit, serializable progress state of a pipeline run."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Iterable

from .enums import ImageStatus, JobState, PipelineStage
from .models import Job
from .schemas import ImageProgress, PipelineSnapshot

logger = logging.getLogger("studioshot.state")

# ETA is withheld until this share of the work is done
MIN_PROGRESS_FOR_ETA = 0.05

_SETTLED = frozenset({ImageStatus.COMPLETE, ImageStatus.ERROR})


def format_eta(seconds: float) -> str:
    """Human-readable remaining time, e.g. ``42s`` or ``3m 5s``."""
    if seconds < 60:
        return f"{math.ceil(seconds)}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {math.ceil(seconds % 60)}s"


class PipelineState:
    """Per-image statuses, stage, warnings and ETA of one run.

    Every change is pushed to the subscribed listeners as a
    ``PipelineSnapshot``; ``snapshot()`` returns the same view on demand.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._images: dict[str, ImageProgress] = {}
        self._listeners: list[Callable[[PipelineSnapshot], None]] = []
        self.stage = PipelineStage.IDLE
        self.active = 0
        self.warnings: list[str] = []
        self.started_at: float | None = None

    def subscribe(self, listener: Callable[[PipelineSnapshot], None]) -> None:
        self._listeners.append(listener)

    def register(self, names: Iterable[str]) -> None:
        """Add images in pending state and start the clock."""
        for name in names:
            self._images.setdefault(name, ImageProgress(name=name))
        if self.started_at is None:
            self.started_at = self._clock()
        self._publish()

    def set_stage(self, stage: PipelineStage) -> None:
        self.stage = stage
        logger.info("Pipeline stage: %s", stage.value)
        self._publish()

    def set_active(self, active: int) -> None:
        self.active = active
        self._publish()

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning(message)
        self._publish()

    def update_image(
        self,
        name: str,
        status: ImageStatus,
        job_id: str | None = None,
        error: str | None = None,
        reconnecting: bool | None = None,
    ) -> None:
        """Record a new status for one image. Settled images keep their status."""
        progress = self._images.setdefault(name, ImageProgress(name=name))
        if progress.status in _SETTLED and status not in _SETTLED:
            return

        progress.status = status
        if job_id is not None:
            progress.job_id = job_id
        if error is not None:
            progress.error = error
        if reconnecting is not None:
            progress.reconnecting = reconnecting
        self._publish()

    def on_job_update(self, job: Job) -> None:
        """Mirror a tracked job onto its image row."""
        if job.state == JobState.FAILED:
            self.update_image(
                job.image_name,
                ImageStatus.ERROR,
                job_id=job.id,
                error=job.error_message or "Shadow processing failed",
                reconnecting=False,
            )
            return

        previous = self._images.get(job.image_name)
        was_reconnecting = previous is not None and previous.reconnecting
        # A completed shadow still has compositing ahead of it
        self.update_image(
            job.image_name,
            ImageStatus.SHADOWING,
            job_id=job.id,
            reconnecting=job.reconnecting,
        )
        if job.reconnecting and not was_reconnecting:
            self.warn(
                f"Reconnecting to '{job.image_name}' "
                f"({job.consecutive_transient_errors} attempts)"
            )

    def status_of(self, name: str) -> ImageStatus:
        return self._images[name].status

    @property
    def total(self) -> int:
        return len(self._images)

    @property
    def completed(self) -> int:
        return sum(1 for p in self._images.values() if p.status == ImageStatus.COMPLETE)

    @property
    def failed(self) -> int:
        return sum(1 for p in self._images.values() if p.status == ImageStatus.ERROR)

    @property
    def progress(self) -> float:
        if not self._images:
            return 0.0
        return (self.completed + self.failed) / self.total

    def eta_seconds(self) -> float | None:
        """Remaining seconds extrapolated from elapsed time and progress."""
        fraction = self.progress
        if self.started_at is None or fraction <= MIN_PROGRESS_FOR_ETA or fraction >= 1.0:
            return None
        elapsed = self._clock() - self.started_at
        return max(0.0, elapsed / fraction - elapsed)

    def snapshot(self) -> PipelineSnapshot:
        return PipelineSnapshot(
            stage=self.stage,
            total=self.total,
            completed=self.completed,
            failed=self.failed,
            active=self.active,
            progress=self.progress,
            eta_seconds=self.eta_seconds(),
            warnings=list(self.warnings),
            images=[p.model_copy() for p in self._images.values()],
        )

    def _publish(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in self._listeners:
            listener(snapshot)
