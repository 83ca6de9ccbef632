"""Bounded-concurrency dispatch over a shared work cursor."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from ..config import Config
from ..models import Batch, CancellationToken, Outcome

logger = logging.getLogger("studioshot.dispatch")

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[int, int, int], None]


async def dispatch(
    items: Sequence[T],
    operation: Callable[[T, int], Awaitable[R]],
    concurrency: int = Config.SUBMIT_CONCURRENCY,
    on_progress: ProgressCallback | None = None,
    fail_fast: bool = False,
) -> list[Outcome[R]]:
    """Run ``operation(item, index)`` over all items with at most ``concurrency`` in flight.

    ``min(concurrency, len(items))`` workers pull ``(index, item)`` pairs from
    one shared cursor and write each outcome to its input position.

    Args:
        items: Work items.
        operation: Coroutine function called as ``operation(item, index)``.
        concurrency: Maximum simultaneous operations.
        on_progress: Called as ``on_progress(completed, total, active)``
            after every finished item.
        fail_fast: Propagate the first error and cancel the other workers
            instead of recording it in the outcome.

    Returns:
        One Outcome per item, in input order.
    """
    total = len(items)
    if total == 0:
        return []
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    results: list[Outcome[R]] = [Outcome(index=i) for i in range(total)]
    cursor = iter(enumerate(items))
    completed = 0
    active = 0

    async def worker() -> None:
        nonlocal completed, active
        for index, item in cursor:
            active += 1
            try:
                results[index].value = await operation(item, index)
            except Exception as e:
                if fail_fast:
                    raise
                logger.warning("Item %d failed: %s", index, e)
                results[index].error = e
            finally:
                active -= 1
                completed += 1
                if on_progress is not None:
                    on_progress(completed, total, active)

    workers = [asyncio.create_task(worker()) for _ in range(min(concurrency, total))]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise

    return results


async def dispatch_groups(
    batches: Sequence[Batch],
    operation: Callable[[Batch, int], Awaitable[R]],
    parallel_batches: int = Config.PARALLEL_BATCHES,
    cancel: CancellationToken | None = None,
    on_group_done: Callable[[int, int], None] | None = None,
) -> list[Outcome[R]]:
    """Run batches ``parallel_batches`` at a time, group after group.

    Between groups the loop yields to the event loop and checks ``cancel``;
    once cancelled no further group starts and only the outcomes of
    processed batches are returned.

    Args:
        batches: Batches in dispatch order.
        operation: Coroutine function called as ``operation(batch, index)``.
        parallel_batches: Batches per group.
        cancel: Cancellation flag.
        on_group_done: Called as ``on_group_done(group_number, group_count)``.

    Returns:
        Outcomes of the batches that were started, in input order.
    """
    if parallel_batches < 1:
        raise ValueError(f"parallel_batches must be >= 1, got {parallel_batches}")

    outcomes: list[Outcome[R]] = []
    group_count = (len(batches) + parallel_batches - 1) // parallel_batches

    for group_no, start in enumerate(range(0, len(batches), parallel_batches), 1):
        if cancel is not None and cancel.cancelled:
            logger.info("Cancelled before batch group %d/%d", group_no, group_count)
            break

        group = batches[start : start + parallel_batches]
        logger.info(
            "Dispatching batch group %d/%d (%d batches)", group_no, group_count, len(group)
        )
        values = await asyncio.gather(
            *(operation(batch, start + i) for i, batch in enumerate(group)),
            return_exceptions=True,
        )
        for i, value in enumerate(values):
            if isinstance(value, asyncio.CancelledError):
                raise value
            if isinstance(value, BaseException):
                logger.error("Batch %d failed: %s", start + i + 1, value)
                outcomes.append(Outcome(index=start + i, error=value))
            else:
                outcomes.append(Outcome(index=start + i, value=value))

        if on_group_done is not None:
            on_group_done(group_no, group_count)

        await asyncio.sleep(0)

    return outcomes
