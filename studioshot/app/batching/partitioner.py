"""Greedy size-bounded batch partitioning."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..config import Config
from ..constants import MIB
from ..exceptions import ValidationError
from ..models import Batch, ImageDescriptor
from ..services.blob_store import BlobStore
from .size_estimator import estimate_size

logger = logging.getLogger("studioshot.batching.partitioner")


def partition_sized(
    pairs: Iterable[tuple[ImageDescriptor, int | None]],
    max_batch_bytes: int = Config.MAX_BATCH_BYTES,
    max_items_per_batch: int = Config.MAX_ITEMS_PER_BATCH,
    max_item_bytes: int = Config.MAX_ITEM_BYTES,
) -> list[Batch]:
    """Split sized descriptors into ordered batches.

    Single left-to-right pass. A known-size item closes the current batch
    when it would push the total past ``max_batch_bytes`` or the batch is
    already full. An unknown-size item closes the current batch and forms a
    batch of its own. An item larger than ``max_batch_bytes`` but under
    ``max_item_bytes`` also ends up alone. Concatenating the result
    reproduces the input.

    Args:
        pairs: ``(descriptor, size)`` in arrival order; size None means unknown.
        max_batch_bytes: Target cumulative size per batch.
        max_items_per_batch: Item cap per batch.
        max_item_bytes: Hard ceiling for a single item.

    Returns:
        List of batches in input order.

    Raises:
        ValidationError: If any known size reaches ``max_item_bytes``. Nothing
            is returned in that case.
    """
    if max_items_per_batch < 1:
        raise ValidationError(f"max_items_per_batch must be >= 1, got {max_items_per_batch}")

    pairs = list(pairs)
    for descriptor, size in pairs:
        if size is not None and size >= max_item_bytes:
            raise ValidationError(
                f"Image '{descriptor.name}' is too large ({size / MIB:.2f}MB). "
                f"Maximum allowed size is {max_item_bytes / MIB:.0f}MB per image."
            )

    batches: list[Batch] = []
    current = Batch()

    def close_current() -> None:
        nonlocal current
        if current.items:
            batches.append(current)
            current = Batch()

    for descriptor, size in pairs:
        if size is None:
            close_current()
            logger.warning("'%s' has unknown size, batching alone", descriptor.name)
            batches.append(Batch(items=[descriptor], forced_singleton=True))
            continue

        if current.items and (
            current.known_bytes + size > max_batch_bytes
            or len(current.items) >= max_items_per_batch
        ):
            close_current()

        current.items.append(descriptor)
        current.known_bytes += size
        if size > max_batch_bytes:
            # Alone in its batch: the next item always closes it
            current.forced_singleton = True

    close_current()

    for i, batch in enumerate(batches, 1):
        logger.debug(
            "Batch %d: %d images, %.2fMB%s",
            i,
            len(batch),
            batch.known_bytes / MIB,
            " (alone)" if batch.forced_singleton else "",
        )
    logger.info("Partitioned %d images into %d batches", len(pairs), len(batches))
    return batches


async def partition(
    descriptors: Sequence[ImageDescriptor],
    max_batch_bytes: int = Config.MAX_BATCH_BYTES,
    max_items_per_batch: int = Config.MAX_ITEMS_PER_BATCH,
    max_item_bytes: int = Config.MAX_ITEM_BYTES,
    blob_store: BlobStore | None = None,
) -> list[Batch]:
    """Estimate every descriptor's size, then partition.

    See ``partition_sized`` for the batching rules.
    """
    sizes = [await estimate_size(d, blob_store) for d in descriptors]
    return partition_sized(
        zip(descriptors, sizes),
        max_batch_bytes=max_batch_bytes,
        max_items_per_batch=max_items_per_batch,
        max_item_bytes=max_item_bytes,
    )
