"""Bounded-concurrency batch scheduler with a global request-start gate."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

import structlog

from ..models.progress import TaskResult

log = structlog.stdlib.get_logger()

T = TypeVar("T")
R = TypeVar("R")


class RateGate:
    """Serialized admission gate enforcing a minimum spacing between request starts.

    Callers are admitted in FIFO order (``asyncio.Lock`` wakes waiters in
    arrival order). No two ``acquire()`` calls return closer together than
    ``min_interval`` seconds, no matter how many workers share the gate.
    """

    def __init__(
        self,
        min_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be non-negative")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_start: float | None = None

    async def acquire(self) -> None:
        """Suspend until it is this caller's turn to start a request."""
        async with self._lock:
            if self._last_start is not None and self.min_interval > 0:
                wait = self._last_start + self.min_interval - self._clock()
                if wait > 0:
                    log.debug("Rate gate: sleeping", sleep_time=wait)
                    await self._sleep(wait)
            self._last_start = self._clock()


class ConcurrencyScheduler:
    """Runs a worker over a list of items with a fixed pool of logical workers.

    ``output[i]`` always corresponds to ``items[i]``. A failing task only
    affects its own slot; the rest of the batch keeps going.
    """

    async def run_tagged(
        self,
        items: Sequence[T],
        worker: Callable[[T, int], Awaitable[R]],
        concurrency: int,
        delay: float = 0.0,
        *,
        gate: RateGate | None = None,
        timeout: float | None = None,
    ) -> list[TaskResult[R]]:
        """Run ``worker`` over ``items`` and return a tagged result per item.

        Args:
            items: Inputs to process
            worker: Coroutine function called as ``worker(item, index)``
            concurrency: Number of logical workers
            delay: Minimum spacing between request starts in seconds (ignored when ``gate`` is given)
            gate: Shared rate gate; a fresh one with ``delay`` is created when omitted
            timeout: Seconds after which unfinished tasks are abandoned

        Returns:
            One ``TaskResult`` per input item, in input order
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        total = len(items)
        results: list[TaskResult[R] | None] = [None] * total
        if total == 0:
            return []

        rate_gate = gate or RateGate(delay)
        next_index = 0

        async def run_worker() -> None:
            nonlocal next_index
            while next_index < total:
                index = next_index
                next_index += 1

                await rate_gate.acquire()
                try:
                    value = await worker(items[index], index)
                except Exception as e:
                    log.debug("Task failed", index=index, error=str(e), error_type=type(e).__name__)
                    results[index] = TaskResult.failure(index, e)
                else:
                    results[index] = TaskResult.success(index, value)

        pool = [asyncio.create_task(run_worker()) for _ in range(min(concurrency, total))]

        _, pending = await asyncio.wait(pool, timeout=timeout)
        if pending:
            log.warning(
                "Batch deadline reached, abandoning unfinished tasks",
                timeout=timeout,
                unfinished_workers=len(pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        tagged = [
            result if result is not None else TaskResult.abandoned(index)
            for index, result in enumerate(results)
        ]

        failed = sum(1 for result in tagged if not result.ok)
        log.debug("Batch finished", total=total, failed=failed, concurrency=concurrency)
        return tagged

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T, int], Awaitable[R]],
        concurrency: int,
        delay: float = 0.0,
        *,
        gate: RateGate | None = None,
        timeout: float | None = None,
    ) -> list[R | None]:
        """Like ``run_tagged`` but failed or abandoned slots collapse to ``None``."""
        tagged = await self.run_tagged(items, worker, concurrency, delay, gate=gate, timeout=timeout)
        return [result.value if result.ok else None for result in tagged]
