"""Polling state machine for remote effect jobs."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence

from ..config import Config
from ..constants import STATE_ORDER
from ..dispatch.resilience import (
    calculate_timeout,
    call_with_deadline,
    is_transient,
    resilient_call,
)
from ..enums import JobState, TimeoutOperation
from ..models import CancellationToken, Job, ShadowParams
from ..schemas import JobStatusResponse
from ..services.effect_service import EffectService
from .cache import ResultCache

logger = logging.getLogger("studioshot.jobs.tracker")

SHADOW_OPERATION = "shadow"


class JobTracker:
    """Open effect jobs and poll them until every one is completed or failed.

    A job moves ``pending -> processing -> completed | failed`` and never
    backwards. Failed status queries are counted per job; after
    ``reconnect_threshold`` consecutive failures the job is flagged as
    reconnecting, but it only fails when the service says so, or when
    ``max_transient_errors`` is set and reached.

    Args:
        service: Remote effect service.
        poll_interval: Seconds between polling rounds.
        reconnect_threshold: Consecutive query failures before a job is
            flagged as reconnecting.
        max_transient_errors: Consecutive query failures that fail a job.
            None keeps polling forever.
        cache: Result cache consulted before submitting and filled on completion.
        sleep: Awaitable sleep, replaceable in tests.
        on_job_update: Called with the job after every visible change.
        max_retries: Attempts per submission.
        base_delay: Initial backoff delay for submissions.
    """

    def __init__(
        self,
        service: EffectService,
        poll_interval: float = Config.POLL_INTERVAL,
        reconnect_threshold: int = Config.RECONNECT_WARNING_THRESHOLD,
        max_transient_errors: int | None = Config.MAX_TRANSIENT_POLL_ERRORS,
        cache: ResultCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_job_update: Callable[[Job], None] | None = None,
        max_retries: int = Config.MAX_RETRIES,
        base_delay: float = Config.RETRY_BASE_DELAY,
    ) -> None:
        if max_transient_errors is not None and max_transient_errors < 1:
            raise ValueError(
                f"max_transient_errors must be None or >= 1, got {max_transient_errors}"
            )
        self.service = service
        self.poll_interval = poll_interval
        self.reconnect_threshold = reconnect_threshold
        self.max_transient_errors = max_transient_errors
        self.cache = cache
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep
        self._on_job_update = on_job_update
        self._requests: dict[str, tuple[str, ShadowParams]] = {}

    async def open_job(
        self,
        name: str,
        image_ref: str,
        params: ShadowParams,
        cached_result: str | None = None,
        size_bytes: int | None = None,
    ) -> Job:
        """Start tracking the effect job of one image.

        A cached result, passed in or found in the result cache, yields an
        already completed job without contacting the service.

        Raises:
            TransientError: If submission keeps failing after all retries.
            HardServiceError: If the service rejects the submission.
        """
        if cached_result is None and self.cache is not None:
            cached_result = self.cache.get(image_ref, SHADOW_OPERATION, params.as_dict())

        if cached_result is not None:
            logger.info("Using cached shadow for %s", name)
            job = Job(
                id=f"cached-{uuid.uuid4().hex}",
                image_name=name,
                state=JobState.COMPLETED,
                result_ref=cached_result,
                cached=True,
            )
            self._notify(job)
            return job

        job_id = await resilient_call(
            lambda: self.service.submit(image_ref, params),
            timeout=calculate_timeout(TimeoutOperation.UPLOAD, size_bytes),
            label=f"submit {name}",
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            sleep=self._sleep,
        )
        logger.info("Created shadow job %s for %s", job_id, name)
        self._requests[job_id] = (image_ref, params)

        job = Job(id=job_id, image_name=name)
        self._notify(job)
        return job

    async def poll_until_settled(
        self, jobs: Sequence[Job], cancel: CancellationToken | None = None
    ) -> list[Job]:
        """Poll all non-terminal jobs until none remain.

        Status queries of one round run concurrently; their answers are
        applied one by one afterwards.

        Raises:
            WorkflowCancelledError: If ``cancel`` is set between rounds.
        """
        rounds = 0
        while True:
            active = [job for job in jobs if not job.is_terminal]
            if not active:
                break
            if cancel is not None:
                cancel.raise_if_cancelled()

            await self._sleep(self.poll_interval)
            rounds += 1

            replies = await asyncio.gather(
                *(self._query(job) for job in active), return_exceptions=True
            )
            for job, reply in zip(active, replies):
                if isinstance(reply, Exception):
                    self._record_error(job, reply)
                elif isinstance(reply, BaseException):
                    raise reply
                else:
                    self._apply(job, reply)

            settled = sum(1 for job in jobs if job.is_terminal)
            logger.debug("Poll round %d: %d / %d settled", rounds, settled, len(jobs))

        logger.info("All %d jobs settled after %d polling rounds", len(jobs), rounds)
        return list(jobs)

    async def _query(self, job: Job) -> JobStatusResponse:
        return await call_with_deadline(
            lambda: self.service.status(job.id),
            calculate_timeout(TimeoutOperation.DOWNLOAD),
            label=f"status {job.id}",
        )

    def _apply(self, job: Job, reply: JobStatusResponse) -> None:
        job.consecutive_transient_errors = 0
        changed = False
        if job.reconnecting:
            logger.info("Job %s recovered from connection issues", job.id)
            job.reconnecting = False
            changed = True

        new_state = reply.status
        if new_state != job.state and STATE_ORDER[new_state] < STATE_ORDER[job.state]:
            logger.debug("Ignoring backwards move %s -> %s for %s", job.state.value, new_state.value, job.id)
        elif new_state != job.state:
            changed = True
            job.state = new_state
            if new_state == JobState.COMPLETED:
                self._complete(job, reply.result_ref)
            elif new_state == JobState.FAILED:
                job.error_message = reply.error_message or "Shadow processing failed"
                logger.warning("Job %s failed: %s", job.id, job.error_message)

        if changed:
            self._notify(job)

    def _complete(self, job: Job, result_ref: str | None) -> None:
        if not result_ref:
            job.state = JobState.FAILED
            job.error_message = "Job completed without a result reference"
            logger.warning("Job %s completed without a result reference", job.id)
            return

        job.result_ref = result_ref
        logger.info("Job %s completed", job.id)
        request = self._requests.pop(job.id, None)
        if self.cache is not None and request is not None:
            image_ref, params = request
            self.cache.put(image_ref, SHADOW_OPERATION, params.as_dict(), result_ref)

    def _record_error(self, job: Job, error: Exception) -> None:
        job.consecutive_transient_errors += 1
        count = job.consecutive_transient_errors
        if is_transient(error):
            logger.warning("Status query for job %s failed (attempt %d): %s", job.id, count, error)
        else:
            logger.error(
                "Unexpected error querying job %s (attempt %d): %r", job.id, count, error
            )

        if self.max_transient_errors is not None and count >= self.max_transient_errors:
            job.state = JobState.FAILED
            job.reconnecting = False
            job.error_message = f"Lost contact with effect service after {count} attempts: {error}"
            self._notify(job)
            return

        if count >= self.reconnect_threshold:
            job.reconnecting = True
            logger.warning("Reconnecting to job %s (%d attempts)", job.id, count)
            self._notify(job)

    def _notify(self, job: Job) -> None:
        if self._on_job_update is not None:
            self._on_job_update(job)
