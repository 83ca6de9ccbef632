"""Blob storage interface and the in-memory implementation."""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("studioshot.services.blob_store")


@dataclass
class StoredBlob:
    """Bytes plus the metadata they were stored with."""
    id: str
    data: bytes
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    @property
    def size(self) -> int:
        declared = self.metadata.get("size")
        if isinstance(declared, int) and declared > 0:
            return declared
        return len(self.data)

    @property
    def mime_type(self) -> str:
        return self.metadata.get("mime_type", "application/octet-stream")


class BlobStore(ABC):
    """Abstract storage for image bytes addressed by opaque ids."""

    @abstractmethod
    async def create_blob(self, metadata: dict[str, Any], data: bytes) -> str:
        """Store bytes and return the new blob id."""

    @abstractmethod
    async def get_blob(self, blob_id: str) -> StoredBlob | None:
        """Return the stored blob, or None when the id is unknown."""

    @abstractmethod
    async def delete_blob(self, blob_id: str) -> bool:
        """Delete a blob. Returns False when the id is unknown."""


class InMemoryBlobStore(BlobStore):
    """Dictionary-backed blob store. Contents live as long as the instance."""

    def __init__(self) -> None:
        self._blobs: dict[str, StoredBlob] = {}

    async def create_blob(self, metadata: dict[str, Any], data: bytes) -> str:
        blob_id = str(uuid.uuid4())
        stored_metadata = dict(metadata)
        stored_metadata.setdefault("size", len(data))
        self._blobs[blob_id] = StoredBlob(id=blob_id, data=data, metadata=stored_metadata)
        logger.debug("Stored blob %s (%d bytes)", blob_id, len(data))
        return blob_id

    async def get_blob(self, blob_id: str) -> StoredBlob | None:
        return self._blobs.get(blob_id)

    async def delete_blob(self, blob_id: str) -> bool:
        removed = self._blobs.pop(blob_id, None)
        if removed is not None:
            logger.debug("Deleted blob %s", blob_id)
        return removed is not None

    def __len__(self) -> int:
        return len(self._blobs)

    def __contains__(self, blob_id: object) -> bool:
        return blob_id in self._blobs
