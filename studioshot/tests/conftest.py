"""Shared pytest fixtures for StudioShot tests."""

from __future__ import annotations

import io
from collections.abc import Callable

import pytest
from PIL import Image

from studioshot.app.constants import MIB
from studioshot.app.enums import JobState
from studioshot.app.models import ImageDescriptor, ShadowParams
from studioshot.app.schemas import JobStatusResponse
from studioshot.app.services.blob_store import InMemoryBlobStore
from studioshot.app.services.effect_service import EffectService


def png_bytes(size: tuple[int, int], color: tuple[int, ...] = (200, 50, 50, 255)) -> bytes:
    image = Image.new("RGBA", size, color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class FakeEffectService(EffectService):
    """Scripted effect service.

    Each job answers status queries from ``script`` in order and then keeps
    repeating the last entry. An entry is a JobState, a JobStatusResponse, or
    an exception to raise.
    """

    def __init__(
        self,
        script: list | None = None,
        submit_errors: list[Exception] | None = None,
        shadow_size: tuple[int, int] = (120, 220),
    ) -> None:
        self.script = script if script is not None else [JobState.PROCESSING, JobState.COMPLETED]
        self.submit_errors = list(submit_errors or [])
        self.shadow_png = png_bytes(shadow_size, (30, 30, 30, 120))
        self.submitted: list[tuple[str, ShadowParams]] = []
        self.status_calls: dict[str, int] = {}
        self.fetched: list[str] = []
        self.scripts: dict[str, list] = {}

    async def submit(self, image_ref: str, params: ShadowParams) -> str:
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        self.submitted.append((image_ref, params))
        job_id = f"job-{len(self.submitted)}"
        self.scripts.setdefault(job_id, list(self.script))
        return job_id

    async def status(self, job_id: str) -> JobStatusResponse:
        calls = self.status_calls.get(job_id, 0)
        self.status_calls[job_id] = calls + 1
        script = self.scripts.get(job_id, self.script)
        entry = script[min(calls, len(script) - 1)]
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, JobStatusResponse):
            return entry
        if entry == JobState.COMPLETED:
            return JobStatusResponse(status=entry, result_ref=f"https://effects.test/results/{job_id}.png")
        if entry == JobState.FAILED:
            return JobStatusResponse(status=entry, error_message="Shadow rendering failed")
        return JobStatusResponse(status=entry)

    async def fetch_result(self, result_ref: str) -> bytes:
        self.fetched.append(result_ref)
        return self.shadow_png


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def fake_service() -> FakeEffectService:
    return FakeEffectService()


@pytest.fixture
def make_descriptor() -> Callable[..., ImageDescriptor]:
    """Build a descriptor with a size in MiB."""

    def _make(name: str, size_mb: float | None) -> ImageDescriptor:
        size = None if size_mb is None else int(size_mb * MIB)
        return ImageDescriptor(name=name, size_bytes=size, reference=f"blob-{name}")

    return _make


@pytest.fixture
def subject_image() -> Image.Image:
    """Opaque product on a transparent margin."""
    img = Image.new("RGBA", (100, 200), (0, 0, 0, 0))
    img.paste(Image.new("RGBA", (80, 180), (30, 120, 220, 255)), (10, 10))
    return img


@pytest.fixture
def backdrop_image() -> Image.Image:
    return Image.new("RGB", (400, 300), (230, 220, 200))


@pytest.fixture
def make_service() -> type[FakeEffectService]:
    return FakeEffectService


@pytest.fixture
def make_png() -> Callable[..., bytes]:
    return png_bytes


@pytest.fixture
def instant_sleep() -> Callable:
    return no_sleep
