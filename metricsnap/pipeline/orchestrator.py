"""METRICSNAP — Batch Orchestrator.

Runs one async fetch per account in fixed-size waves, optionally capped by
a concurrency limit inside each wave, and gathers every outcome before
anything downstream runs. A fetch that raises is turned into a sentinel row
by the caller-supplied ``on_failure`` hook, so one bad account never drops
or blocks the others.
"""

import asyncio
import inspect
import time
from itertools import chain
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from metricsnap.core.logging import get_logger
from metricsnap.models.row_models import RawRow

logger = get_logger("pipeline.orchestrator")

A = TypeVar("A")

FetchFn = Callable[[Any], Awaitable[RawRow]]
FailureFn = Callable[[Any, Exception], RawRow]
ProgressFn = Callable[[int, int], Any]


def chunk(items: Sequence[A], size: Optional[int]) -> List[Tuple[A, ...]]:
    """Split items into consecutive tuples of at most ``size``.

    ``None`` or a non-positive size means a single wave.
    """
    items = tuple(items)
    if not items:
        return []
    if not size or size <= 0:
        return [items]
    return [items[i : i + size] for i in range(0, len(items), size)]


def _account_label(account: Any) -> str:
    for attr in ("brand", "name", "account_name"):
        label = getattr(account, attr, None)
        if label:
            return str(label)
    return str(account)


class BatchOrchestrator:
    """Gather per-account fetch results with bounded concurrency."""

    def __init__(
        self,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        progress: Optional[ProgressFn] = None,
    ):
        self.batch_size = batch_size
        self.max_concurrency = max_concurrency
        self.progress = progress

    async def _run_one(
        self,
        account: Any,
        fetch: FetchFn,
        on_failure: FailureFn,
        semaphore: Optional[asyncio.Semaphore],
    ) -> RawRow:
        try:
            if semaphore is None:
                return await fetch(account)
            async with semaphore:
                return await fetch(account)
        except Exception as e:
            logger.warning(
                f"Fetch failed for {_account_label(account)}: {type(e).__name__}: {e}",
                extra={"account": _account_label(account)},
            )
            return on_failure(account, e)

    async def _report(self, batch_number: int, total_batches: int) -> None:
        if self.progress is None:
            return
        try:
            result = self.progress(batch_number, total_batches)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    async def gather(
        self,
        accounts: Sequence[Any],
        fetch: FetchFn,
        on_failure: FailureFn,
    ) -> List[RawRow]:
        """Fetch every account and return results in roster order."""
        batches = chunk(accounts, self.batch_size)
        semaphore = (
            asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        )
        waves: List[Tuple[RawRow, ...]] = []

        for number, batch in enumerate(batches, 1):
            started = time.monotonic()
            wave = await asyncio.gather(
                *(self._run_one(a, fetch, on_failure, semaphore) for a in batch)
            )
            waves.append(tuple(wave))
            logger.info(
                f"Batch {number} of {len(batches)} complete ({len(batch)} accounts)",
                extra={
                    "batch": number,
                    "duration_ms": round((time.monotonic() - started) * 1000),
                },
            )
            await self._report(number, len(batches))

        return list(chain.from_iterable(waves))
