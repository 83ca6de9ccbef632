"""Shared constants for StudioShot."""

from __future__ import annotations

from .enums import AspectRatioMode, JobState, TimeoutOperation

MIB = 1024 * 1024

# Base64 packs 3 bytes into 4 characters
BASE64_BYTES_PER_CHAR = 0.75

# Fixed target ratios (width / height)
FIXED_ASPECT_RATIOS = {
    AspectRatioMode.SQUARE: 1.0,
    AspectRatioMode.PORTRAIT: 3 / 4,
    AspectRatioMode.LANDSCAPE: 4 / 3,
}

# Base deadline per external operation, in seconds
BASE_TIMEOUTS = {
    TimeoutOperation.UPLOAD: 15.0,
    TimeoutOperation.SHADOW: 30.0,
    TimeoutOperation.BG_REMOVAL: 90.0,
    TimeoutOperation.DOWNLOAD: 20.0,
}

TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})

# Position of each state along the lifecycle; transitions only move forward
STATE_ORDER = {
    JobState.PENDING: 0,
    JobState.PROCESSING: 1,
    JobState.COMPLETED: 2,
    JobState.FAILED: 2,
}

# (offset, alpha) pairs from the subject's foot line downwards
DEFAULT_REFLECTION_STOPS = (
    (0.0, 0.5),
    (0.2, 0.35),
    (0.5, 0.15),
    (0.8, 0.05),
    (1.0, 0.0),
)

# Glossy-floor grading
REFLECTION_BRIGHTNESS = 1.3
REFLECTION_CONTRAST = 1.7
REFLECTION_SATURATION = 1.6

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = (0.299, 0.587, 0.114)

# HTTP statuses worth another attempt
TRANSIENT_HTTP_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})
