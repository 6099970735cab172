"""Bounded-concurrency, order-preserving batch execution."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from .errors import ExportCancelledError, ExportError, ExportTimeoutError, PipelineError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CHUNK_SIZE = 5


class CancellationToken:
    """One-way cancellation flag shared by the suspension points of an export."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExportCancelledError("Export was cancelled")


async def guarded(
    awaitable: Awaitable[R],
    *,
    timeout: float | None = None,
    cancel_token: CancellationToken | None = None,
    description: str = "operation",
) -> R:
    """Await *awaitable*, aborting on timeout or cancellation.

    With neither *timeout* nor *cancel_token* this is a plain ``await``.

    Raises:
        ExportTimeoutError: If *timeout* seconds pass first.
        ExportCancelledError: If *cancel_token* is cancelled first.
    """
    task = asyncio.ensure_future(awaitable)

    if cancel_token is None:
        try:
            return await asyncio.wait_for(task, timeout=timeout)
        except asyncio.TimeoutError:
            raise ExportTimeoutError(
                f"{description} timed out after {timeout}s"
            ) from None

    if cancel_token.cancelled:
        task.cancel()
        raise ExportCancelledError(f"{description} was cancelled")

    waiter = asyncio.ensure_future(cancel_token.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    except BaseException:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    if waiter in done:
        raise ExportCancelledError(f"{description} was cancelled")
    raise ExportTimeoutError(f"{description} timed out after {timeout}s")


def gather_in_order(
    func: Callable[[T], Awaitable[R]],
) -> Callable[[list[T]], Awaitable[list[R]]]:
    """Build a chunk processor that runs *func* on every item concurrently.

    Results keep the order of the chunk.  The first item to fail cancels the
    rest of the chunk and its exception is raised unchanged.
    """

    async def _process(chunk: list[T]) -> list[R]:
        if not chunk:
            return []

        tasks = [asyncio.ensure_future(func(item)) for item in chunk]
        try:
            done, pending = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_EXCEPTION
            )
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        failures = [
            task.exception()
            for task in tasks
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if failures:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise failures[0]

        return [task.result() for task in tasks]

    return _process


async def run_in_chunks(
    items: Iterable[T],
    chunk_size: int,
    processor: Callable[[list[T]], Awaitable[list[R]]],
    *,
    chunk_timeout: float | None = None,
    cancel_token: CancellationToken | None = None,
) -> list[R]:
    """Process *items* in consecutive chunks of *chunk_size*.

    Each chunk is handed to *processor* as a whole and fully awaited before
    the next chunk starts, so at most *chunk_size* items are in flight when
    the processor runs its chunk concurrently (see :func:`gather_in_order`).
    Chunk results are concatenated in chunk order.

    Args:
        items: Ordered items to process.
        chunk_size: Maximum number of items per chunk.
        processor: Coroutine function mapping a chunk to its results, in
            within-chunk order.
        chunk_timeout: Optional limit in seconds for each chunk join.
        cancel_token: Optional token checked before and during every chunk.

    Returns:
        All results, in input order.

    Raises:
        ValueError: If *chunk_size* is smaller than 1.
        PipelineError: If any chunk fails.  Export errors raised by the
            processor propagate unchanged; other exceptions are wrapped.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")

    items = list(items)
    results: list[R] = []
    total_chunks = -(-len(items) // chunk_size)

    for chunk_idx, start in enumerate(range(0, len(items), chunk_size)):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        chunk = items[start:start + chunk_size]
        logger.debug(
            "Processing chunk %d/%d (%d items)", chunk_idx + 1, total_chunks, len(chunk)
        )

        try:
            chunk_results = await guarded(
                processor(chunk),
                timeout=chunk_timeout,
                cancel_token=cancel_token,
                description=f"Chunk {chunk_idx + 1}/{total_chunks}",
            )
        except ExportError:
            raise
        except Exception as exc:
            raise PipelineError(
                f"Chunk {chunk_idx + 1}/{total_chunks} failed: {exc}"
            ) from exc

        if len(chunk_results) != len(chunk):
            raise PipelineError(
                f"Chunk {chunk_idx + 1}/{total_chunks} returned "
                f"{len(chunk_results)} results for {len(chunk)} items"
            )
        results.extend(chunk_results)

    return results
