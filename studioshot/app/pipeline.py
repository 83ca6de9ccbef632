"""Main StudioShot orchestrator: partition, dispatch, poll, composite."""

from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import Awaitable, Callable, Sequence

from PIL import Image

from .batching import partition
from .composition import Compositor, encode_image
from .config import Config
from .dispatch import calculate_timeout, dispatch, dispatch_groups, resilient_call
from .enums import ImageStatus, JobState, PipelineStage, TimeoutOperation
from .exceptions import WorkflowCancelledError
from .ingest import decode_inline_data, ingest
from .jobs import JobTracker, ResultCache
from .models import (
    Batch,
    CancellationToken,
    CompositionResult,
    FailedImage,
    ImageDescriptor,
    Job,
    PipelineResult,
    RenderRules,
    Subject,
)
from .services.blob_store import BlobStore, InMemoryBlobStore
from .services.effect_service import EffectService
from .state import PipelineState
from .validators import validate_padding, validate_placement, validate_reflection_spec

logger = logging.getLogger("studioshot.pipeline")


class StudioShotPipeline:
    """Main engine that turns a batch of subjects into composited studio images.

    Stages: ingestion, size-bounded partitioning, batch-group dispatch of
    shadow jobs, polling until every job settles, then compositing in small
    concurrent groups. Failures are isolated per image and reported in
    ``PipelineResult.failed``.
    """

    def __init__(
        self,
        service: EffectService,
        blob_store: BlobStore | None = None,
        compositor: Compositor | None = None,
        cache: ResultCache | None = None,
        *,
        concurrency: int = Config.SUBMIT_CONCURRENCY,
        parallel_batches: int = Config.PARALLEL_BATCHES,
        composite_concurrency: int = Config.COMPOSITE_CONCURRENCY,
        max_batch_bytes: int = Config.MAX_BATCH_BYTES,
        max_items_per_batch: int = Config.MAX_ITEMS_PER_BATCH,
        max_item_bytes: int = Config.MAX_ITEM_BYTES,
        poll_interval: float = Config.POLL_INTERVAL,
        reconnect_threshold: int = Config.RECONNECT_WARNING_THRESHOLD,
        max_transient_errors: int | None = Config.MAX_TRANSIENT_POLL_ERRORS,
        max_retries: int = Config.MAX_RETRIES,
        base_delay: float = Config.RETRY_BASE_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.service = service
        self.blob_store = blob_store if blob_store is not None else InMemoryBlobStore()
        self.compositor = compositor if compositor is not None else Compositor()
        self.cache = cache
        self.concurrency = concurrency
        self.parallel_batches = parallel_batches
        self.composite_concurrency = composite_concurrency
        self.max_batch_bytes = max_batch_bytes
        self.max_items_per_batch = max_items_per_batch
        self.max_item_bytes = max_item_bytes
        self.poll_interval = poll_interval
        self.reconnect_threshold = reconnect_threshold
        self.max_transient_errors = max_transient_errors
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep

    def _make_tracker(self, state: PipelineState) -> JobTracker:
        return JobTracker(
            self.service,
            poll_interval=self.poll_interval,
            reconnect_threshold=self.reconnect_threshold,
            max_transient_errors=self.max_transient_errors,
            cache=self.cache,
            sleep=self._sleep,
            on_job_update=state.on_job_update,
            max_retries=self.max_retries,
            base_delay=self.base_delay,
        )

    async def run(
        self,
        subjects: Sequence[Subject],
        rules: RenderRules | None = None,
        backdrop: Image.Image | None = None,
        state: PipelineState | None = None,
        cancel: CancellationToken | None = None,
    ) -> PipelineResult:
        """Process a batch of subjects end to end.

        Args:
            subjects: Raw or pre-processed subjects.
            rules: Placement and effect settings shared by the batch.
            backdrop: Backdrop image; white when omitted.
            state: Progress state to update; a fresh one when omitted.
            cancel: Cancellation flag checked between stages.

        Returns:
            PipelineResult with composited images in input order.

        Raises:
            ValidationError: If the render rules are invalid or an image is
                above the size ceiling.
        """
        rules = rules or RenderRules()
        state = state or PipelineState()
        cancel = cancel or CancellationToken()
        result = PipelineResult()

        validate_placement(rules.placement)
        validate_padding(rules.padding_fraction)
        if rules.reflection is not None:
            validate_reflection_spec(rules.reflection)

        ingested = await ingest(
            subjects, self.blob_store, rules.shadow, max_item_bytes=self.max_item_bytes
        )
        state.register(s.descriptor.name for s in ingested)
        descriptors = {s.descriptor.name: s.descriptor for s in ingested}
        cached = {s.descriptor.name: s.cached_shadow_ref for s in ingested if s.cached_shadow_ref}
        order = {name: i for i, name in enumerate(descriptors)}

        try:
            cancel.raise_if_cancelled()
            state.set_stage(PipelineStage.PARTITIONING)
            batches = await partition(
                list(descriptors.values()),
                max_batch_bytes=self.max_batch_bytes,
                max_items_per_batch=self.max_items_per_batch,
                max_item_bytes=self.max_item_bytes,
                blob_store=self.blob_store,
            )

            cancel.raise_if_cancelled()
            state.set_stage(PipelineStage.DISPATCHING)
            tracker = self._make_tracker(state)
            jobs = await self._dispatch_batches(batches, tracker, rules, cached, state, result, cancel)

            cancel.raise_if_cancelled()
            state.set_stage(PipelineStage.POLLING)
            jobs = await tracker.poll_until_settled(jobs, cancel)

            for job in jobs:
                if job.state == JobState.FAILED:
                    result.failed.append(
                        FailedImage(job.image_name, job.error_message or "Shadow processing failed")
                    )

            cancel.raise_if_cancelled()
            state.set_stage(PipelineStage.COMPOSITING)
            completed = [job for job in jobs if job.state == JobState.COMPLETED]
            await self._composite_all(completed, descriptors, rules, backdrop, state, result, cancel)
        except WorkflowCancelledError as e:
            logger.info("Pipeline cancelled: %s", e)
            result.cancelled = True
            state.set_stage(PipelineStage.CANCELLED)
            return result

        result.composited.sort(key=lambda r: order[r.name])
        result.failed.sort(key=lambda f: order.get(f.name, len(order)))
        state.set_stage(PipelineStage.DONE)
        logger.info(
            "Pipeline finished: %d composited, %d failed",
            len(result.composited),
            len(result.failed),
        )
        return result

    async def _dispatch_batches(
        self,
        batches: list[Batch],
        tracker: JobTracker,
        rules: RenderRules,
        cached: dict[str, str],
        state: PipelineState,
        result: PipelineResult,
        cancel: CancellationToken,
    ) -> list[Job]:
        """Open a job per image, batch group after batch group."""

        async def open_one(descriptor: ImageDescriptor, index: int) -> Job:
            state.update_image(descriptor.name, ImageStatus.UPLOADING)
            return await tracker.open_job(
                descriptor.name,
                descriptor.image_ref,
                rules.shadow,
                cached_result=cached.get(descriptor.name),
                size_bytes=descriptor.size_bytes,
            )

        async def submit_batch(batch: Batch, index: int) -> list[Job]:
            logger.info("Submitting batch %d (%d images)", index + 1, len(batch))
            outcomes = await dispatch(
                batch.items,
                open_one,
                concurrency=self.concurrency,
                on_progress=lambda done, total, active: state.set_active(active),
            )
            jobs = []
            for descriptor, outcome in zip(batch.items, outcomes):
                if outcome.ok:
                    jobs.append(outcome.value)
                else:
                    message = str(outcome.error) or type(outcome.error).__name__
                    result.failed.append(FailedImage(descriptor.name, message))
                    state.update_image(descriptor.name, ImageStatus.ERROR, error=message)
            return jobs

        group_outcomes = await dispatch_groups(
            batches, submit_batch, parallel_batches=self.parallel_batches, cancel=cancel
        )
        jobs: list[Job] = []
        for outcome in group_outcomes:
            if outcome.ok:
                jobs.extend(outcome.value)
                continue
            for descriptor in batches[outcome.index].items:
                result.failed.append(FailedImage(descriptor.name, str(outcome.error)))
                state.update_image(descriptor.name, ImageStatus.ERROR, error=str(outcome.error))
        return jobs

    async def _composite_all(
        self,
        jobs: list[Job],
        descriptors: dict[str, ImageDescriptor],
        rules: RenderRules,
        backdrop: Image.Image | None,
        state: PipelineState,
        result: PipelineResult,
        cancel: CancellationToken,
    ) -> None:
        """Composite settled jobs a few at a time, yielding between groups."""
        step = self.composite_concurrency
        for start in range(0, len(jobs), step):
            cancel.raise_if_cancelled()
            group = jobs[start : start + step]
            logger.info(
                "Compositing group %d/%d",
                start // step + 1,
                (len(jobs) + step - 1) // step,
            )
            outcomes = await asyncio.gather(
                *(
                    self._composite_one(job, descriptors[job.image_name], rules, backdrop, state, result)
                    for job in group
                ),
                return_exceptions=True,
            )
            # Per-image errors are recorded by _composite_one
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            await asyncio.sleep(0)

    async def _composite_one(
        self,
        job: Job,
        descriptor: ImageDescriptor,
        rules: RenderRules,
        backdrop: Image.Image | None,
        state: PipelineState,
        result: PipelineResult,
    ) -> None:
        name = job.image_name
        state.update_image(name, ImageStatus.COMPOSITING, job_id=job.id)
        try:
            shadow_bytes = await self._load_shadow(job, descriptor.size_bytes)
            clean_bytes = await self._load_clean(descriptor)
            composed = await asyncio.to_thread(
                self._render, shadow_bytes, clean_bytes, rules, backdrop, name
            )
            encoded = await asyncio.to_thread(encode_image, composed.image)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("Error compositing %s: %s", name, message)
            result.failed.append(FailedImage(name, message))
            state.update_image(name, ImageStatus.ERROR, error=message)
            return

        result.composited.append(composed)
        result.encoded[name] = encoded
        for warning in composed.warnings:
            state.warn(f"{name}: {warning}")
        state.update_image(name, ImageStatus.COMPLETE)

    def _render(
        self,
        shadow_bytes: bytes,
        clean_bytes: bytes,
        rules: RenderRules,
        backdrop: Image.Image | None,
        name: str,
    ) -> CompositionResult:
        shadowed = _open_image(shadow_bytes)
        clean = _open_image(clean_bytes)
        return self.compositor.compose(shadowed, rules, backdrop=backdrop, clean=clean, name=name)

    async def _load_shadow(self, job: Job, size_bytes: int | None) -> bytes:
        """Shadow bytes of a completed job; remote results are kept in the blob store."""
        ref = job.result_ref or ""
        blob = await self.blob_store.get_blob(ref)
        if blob is not None:
            return blob.data

        data = await self._load_bytes(ref, size_bytes)
        blob_id = await self.blob_store.create_blob(
            {"name": job.image_name, "kind": "shadow", "source": ref}, data
        )
        logger.debug("Stored shadow of %s as blob %s", job.image_name, blob_id)
        return data

    async def _load_clean(self, descriptor: ImageDescriptor) -> bytes:
        if descriptor.reference:
            return await self._load_bytes(descriptor.reference, descriptor.size_bytes)
        return decode_inline_data(descriptor.inline_data or "")

    async def _load_bytes(self, ref: str, size_bytes: int | None) -> bytes:
        """Bytes behind a blob id, a data URL or a remote reference."""
        blob = await self.blob_store.get_blob(ref)
        if blob is not None:
            return blob.data
        if ref.startswith("data:"):
            return decode_inline_data(ref)

        return await resilient_call(
            lambda: self.service.fetch_result(ref),
            timeout=calculate_timeout(TimeoutOperation.DOWNLOAD, size_bytes),
            label=f"download {ref[:60]}",
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            sleep=self._sleep,
        )


def _open_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image
