"""Interfaces to the blob store and the remote effect service."""

from .blob_store import BlobStore, InMemoryBlobStore, StoredBlob
from .effect_service import EffectService, HttpEffectService

__all__ = [
    "BlobStore",
    "EffectService",
    "HttpEffectService",
    "InMemoryBlobStore",
    "StoredBlob",
]
