"""Enumerations shared across the engine."""

from __future__ import annotations

from enum import Enum


class JobState(str, Enum):
    """Lifecycle of one remote effect-generation job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AspectRatioMode(str, Enum):
    """Target canvas aspect ratio."""
    SQUARE = "1:1"
    PORTRAIT = "3:4"
    LANDSCAPE = "4:3"
    ORIGINAL = "original"


class TimeoutOperation(str, Enum):
    """External operations with their own deadline budget."""
    UPLOAD = "upload"
    SHADOW = "shadow"
    BG_REMOVAL = "bg-removal"
    DOWNLOAD = "download"


class ImageStatus(str, Enum):
    """Per-image progress as reported to the caller."""
    PENDING = "pending"
    UPLOADING = "uploading"
    SHADOWING = "shadowing"
    COMPOSITING = "compositing"
    COMPLETE = "complete"
    ERROR = "error"


class PipelineStage(str, Enum):
    """Coarse stage of a pipeline run."""
    IDLE = "idle"
    PARTITIONING = "partitioning"
    DISPATCHING = "dispatching"
    POLLING = "polling"
    COMPOSITING = "compositing"
    DONE = "done"
    CANCELLED = "cancelled"
