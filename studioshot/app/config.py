"""Global configuration for StudioShot."""

from __future__ import annotations

from .constants import MIB


class Config:
    """Global configuration."""

    # Batching limits
    MAX_BATCH_BYTES = 200 * MIB  # Target per-request payload
    MAX_ITEM_BYTES = 300 * MIB  # Hard external ceiling for a single image
    MAX_ITEMS_PER_BATCH = 15

    # Concurrency
    SUBMIT_CONCURRENCY = 3  # Concurrent effect-service requests per batch
    PARALLEL_BATCHES = 2  # Batch groups dispatched side by side
    COMPOSITE_CONCURRENCY = 3

    # Resilient calls
    MAX_RETRIES = 3  # Total attempts, including the first one
    RETRY_BASE_DELAY = 2.0  # Seconds; doubles after every failed attempt
    TIMEOUT_LARGE_IMAGE_MB = 10  # Images above this size get extra time
    TIMEOUT_SECONDS_PER_EXTRA_MB = 2.0
    TIMEOUT_MAX_EXTENSION = 120.0

    # Job polling
    POLL_INTERVAL = 3.0
    RECONNECT_WARNING_THRESHOLD = 3
    MAX_TRANSIENT_POLL_ERRORS: int | None = None  # None = keep polling forever

    # Result cache
    CACHE_TTL_SECONDS = 24 * 60 * 60

    # Compositing
    DEFAULT_PADDING = 0.10  # Per side
    REFERENCE_WIDTH = 3000  # Effect sizes are tuned for this canvas width
    REFLECTION_FOOT_OVERLAP = 0.30  # Share of vertical shadow padding under the product
    DOF_BLUR_RADIUS = 12  # At REFERENCE_WIDTH
    DOF_FADE_START = 0.55  # Blur fully visible above this fraction of the height
    DOF_FADE_END = 0.85  # Blur gone below this fraction of the height
    GAMMA = 2.2
    OUTPUT_FORMAT = "PNG"

    # Effect service
    SERVICE_BASE_URL = "http://localhost:5000"
    SERVICE_CONNECT_TIMEOUT = 10.0
