"""Unit tests for the batch orchestrator."""

import asyncio

import pytest

from metricsnap.pipeline.orchestrator import BatchOrchestrator, chunk


def sentinel_row(account, exc):
    return {"account_name": account, "ad_spend_timeframe": "Error fetching data"}


class TestChunk:
    def test_even_and_ragged_batches(self) -> None:
        assert chunk([1, 2, 3, 4, 5], 2) == [(1, 2), (3, 4), (5,)]

    def test_no_size_means_one_wave(self) -> None:
        assert chunk([1, 2, 3], None) == [(1, 2, 3)]
        assert chunk([1, 2, 3], 0) == [(1, 2, 3)]

    def test_empty_roster(self) -> None:
        assert chunk([], 75) == []


class TestGather:
    async def test_failure_is_isolated_to_its_account(self) -> None:
        async def fetch(account):
            if account == "B":
                raise RuntimeError("boom")
            return {"account_name": account, "ad_spend_timeframe": "100"}

        rows = await BatchOrchestrator(batch_size=75).gather(["A", "B", "C"], fetch, sentinel_row)

        assert len(rows) == 3
        assert rows[0]["ad_spend_timeframe"] == "100"
        assert rows[1] == {"account_name": "B", "ad_spend_timeframe": "Error fetching data"}
        assert rows[2]["ad_spend_timeframe"] == "100"

    async def test_results_keep_roster_order(self) -> None:
        async def fetch(account):
            await asyncio.sleep(0.01 * (5 - account))
            return {"account_name": account}

        rows = await BatchOrchestrator(batch_size=2).gather(list(range(5)), fetch, sentinel_row)
        assert [r["account_name"] for r in rows] == [0, 1, 2, 3, 4]

    async def test_concurrency_never_exceeds_limit(self) -> None:
        in_flight = 0
        peak = 0

        async def fetch(account):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return {"account_name": account}

        rows = await BatchOrchestrator(max_concurrency=5).gather(list(range(20)), fetch, sentinel_row)
        assert len(rows) == 20
        assert peak == 5

    async def test_waves_do_not_overlap(self) -> None:
        events = []

        async def fetch(account):
            events.append(("start", account))
            await asyncio.sleep(0)
            events.append(("end", account))
            return {"account_name": account}

        await BatchOrchestrator(batch_size=3).gather(list(range(6)), fetch, sentinel_row)
        second_wave_start = events.index(("start", 3))
        assert all(events.index(("end", a)) < second_wave_start for a in (0, 1, 2))

    async def test_progress_reports_each_batch(self) -> None:
        seen = []

        async def fetch(account):
            return {"account_name": account}

        await BatchOrchestrator(batch_size=2, progress=lambda n, total: seen.append((n, total))).gather(
            [1, 2, 3], fetch, sentinel_row
        )
        assert seen == [(1, 2), (2, 2)]

    async def test_failing_progress_callback_is_ignored(self) -> None:
        async def fetch(account):
            return {"account_name": account}

        async def progress(n, total):
            raise ValueError("socket closed")

        rows = await BatchOrchestrator(batch_size=1, progress=progress).gather(
            ["A", "B"], fetch, sentinel_row
        )
        assert len(rows) == 2

    async def test_cancellation_is_not_swallowed(self) -> None:
        async def fetch(account):
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await BatchOrchestrator().gather(["A"], fetch, sentinel_row)
