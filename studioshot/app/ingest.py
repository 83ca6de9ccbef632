"""Resolve submitted subjects into image descriptors, once."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from collections.abc import Sequence

from .config import Config
from .exceptions import ValidationError
from .models import (
    ImageDescriptor,
    IngestedSubject,
    PreProcessedSubject,
    RawSubject,
    ShadowParams,
    Subject,
)
from .services.blob_store import BlobStore
from .validators import validate_descriptors

logger = logging.getLogger("studioshot.ingest")

_DATA_URL_HEADER = re.compile(r"^data:[^,]*,")


def decode_inline_data(data: str) -> bytes:
    """Decode base64 image content, with or without a ``data:`` header.

    Raises:
        ValidationError: If the payload is not valid base64.
    """
    payload = _DATA_URL_HEADER.sub("", data.strip(), count=1)
    try:
        return base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Invalid base64 image data: {e}") from e


def is_shadow_stale(generated_with: ShadowParams | None, current: ShadowParams) -> bool:
    """True when a stored shadow was not rendered with ``current`` parameters.

    A shadow with unknown parameters counts as stale.
    """
    return generated_with is None or generated_with != current


async def ingest_subject(
    subject: Subject, blob_store: BlobStore, shadow_params: ShadowParams
) -> IngestedSubject:
    """Turn one subject into an IngestedSubject.

    Raw bytes are stored in the blob store and referenced by id. A
    pre-processed subject keeps its descriptor; its stored shadow is reused
    only when it matches ``shadow_params``.

    Raises:
        ValidationError: If the subject is empty or of an unknown kind.
    """
    if isinstance(subject, RawSubject):
        if not subject.data:
            raise ValidationError(f"Image '{subject.name}' is empty")
        blob_id = await blob_store.create_blob(
            {"name": subject.name, "mime_type": subject.mime_type, "size": len(subject.data)},
            subject.data,
        )
        descriptor = ImageDescriptor(
            name=subject.name, size_bytes=len(subject.data), reference=blob_id
        )
        return IngestedSubject(descriptor=descriptor)

    if isinstance(subject, PreProcessedSubject):
        cached = subject.shadow_ref
        if cached and is_shadow_stale(subject.shadow_params, shadow_params):
            logger.warning(
                "Shadow of '%s' was made with other parameters, regenerating",
                subject.descriptor.name,
            )
            cached = None
        return IngestedSubject(descriptor=subject.descriptor, cached_shadow_ref=cached)

    raise ValidationError(f"Unsupported subject type: {type(subject).__name__}")


async def ingest(
    subjects: Sequence[Subject],
    blob_store: BlobStore,
    shadow_params: ShadowParams,
    max_item_bytes: int = Config.MAX_ITEM_BYTES,
) -> list[IngestedSubject]:
    """Resolve every subject, in order, and validate the resulting descriptors."""
    ingested = [await ingest_subject(s, blob_store, shadow_params) for s in subjects]
    validate_descriptors([s.descriptor for s in ingested], max_item_bytes)
    reused = sum(1 for s in ingested if s.cached_shadow_ref)
    logger.info("Ingested %d subjects (%d with reusable shadows)", len(ingested), reused)
    return ingested
