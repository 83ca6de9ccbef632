"""Size estimation and size-bounded batch partitioning."""

from .partitioner import partition, partition_sized
from .size_estimator import estimate_base64_size, estimate_size

__all__ = [
    "estimate_base64_size",
    "estimate_size",
    "partition",
    "partition_sized",
]
