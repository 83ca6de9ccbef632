"""Best-effort byte-size estimation for image descriptors."""

from __future__ import annotations

import logging
import re

from ..constants import BASE64_BYTES_PER_CHAR
from ..models import ImageDescriptor
from ..services.blob_store import BlobStore

logger = logging.getLogger("studioshot.batching.size")

_DATA_URL_HEADER = re.compile(r"^data:[^,]*,")
_WHITESPACE = re.compile(r"\s+")


def estimate_base64_size(data: str) -> int:
    """Decoded byte size of a base64 payload.

    A ``data:...;base64,`` header and any whitespace are ignored.

    Args:
        data: Base64 text, optionally a data URL.

    Returns:
        Estimated size in bytes.
    """
    payload = _DATA_URL_HEADER.sub("", data, count=1)
    payload = _WHITESPACE.sub("", payload)
    return int(len(payload) * BASE64_BYTES_PER_CHAR)


async def estimate_size(
    descriptor: ImageDescriptor, blob_store: BlobStore | None = None
) -> int | None:
    """Estimate the byte size of one image.

    Sources, in priority order: explicit positive ``size_bytes``, the blob
    store's metadata for ``reference``, then the inline base64 payload.

    Args:
        descriptor: Image to size.
        blob_store: Store used to look up referenced blobs.

    Returns:
        Size in bytes, or None when no source yields a value.
    """
    if descriptor.size_bytes is not None and descriptor.size_bytes > 0:
        return descriptor.size_bytes

    if descriptor.reference and blob_store is not None:
        try:
            blob = await blob_store.get_blob(descriptor.reference)
        except Exception as e:
            logger.warning("Blob lookup failed for '%s': %s", descriptor.name, e)
            blob = None
        if blob is not None and blob.size > 0:
            return blob.size

    if descriptor.inline_data:
        size = estimate_base64_size(descriptor.inline_data)
        if size > 0:
            return size

    logger.warning("Could not determine size of '%s'", descriptor.name)
    return None
