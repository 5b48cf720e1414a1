"""Tests for ranked batch enrichment."""

import asyncio

import pytest

from app.connectors.batching import chunked, enrich_ranked


def test_chunked():
    assert chunked(list(range(5)), 2) == [[0, 1], [2, 3], [4]]
    with pytest.raises(ValueError):
        chunked([1], 0)


class Details:
    """fetch_batch double recording each call; later batches answer sooner."""

    def __init__(self, missing=(), stagger=0.0):
        self.batches = []
        self.missing = set(missing)
        self.stagger = stagger

    async def __call__(self, batch):
        index = len(self.batches)
        self.batches.append(list(batch))
        await asyncio.sleep(max(self.stagger * (5 - index), 0))
        return {item: {"id": item} for item in batch if item not in self.missing}


IDS = [f"v{i:03d}" for i in range(120)]


@pytest.mark.asyncio
async def test_stops_after_the_batch_that_fills_the_limit():
    details = Details()
    items = await enrich_ranked(IDS, details, lambda i, d: i, batch_size=50, limit=50)
    assert len(details.batches) == 1
    assert items == IDS[:50]


@pytest.mark.asyncio
async def test_filtered_items_pull_in_further_batches():
    details = Details()
    keep_even = lambda i, d: i if int(i[1:]) % 2 == 0 else None  # noqa: E731
    items = await enrich_ranked(IDS, details, keep_even, batch_size=50, limit=50)
    assert len(details.batches) == 2
    assert items == [i for i in IDS if int(i[1:]) % 2 == 0][:50]


@pytest.mark.asyncio
async def test_rank_order_kept_under_out_of_order_completion():
    details = Details(stagger=0.01)
    items = await enrich_ranked(
        IDS, details, lambda i, d: i, batch_size=10, limit=30, concurrency=3
    )
    assert items == IDS[:30]
    assert len(details.batches) == 3


@pytest.mark.asyncio
async def test_missing_and_broken_items_are_skipped():
    details = Details(missing={"v001"})

    def build(item_id, detail):
        if item_id == "v002":
            raise KeyError("snippet")
        return item_id

    items = await enrich_ranked(IDS[:5], details, build, batch_size=50, limit=50)
    assert items == ["v000", "v003", "v004"]


@pytest.mark.asyncio
async def test_failed_batch_call_propagates():
    async def boom(batch):
        raise RuntimeError("quota exceeded")

    with pytest.raises(RuntimeError):
        await enrich_ranked(IDS, boom, lambda i, d: i, batch_size=50, limit=50)


@pytest.mark.asyncio
async def test_empty_ranking():
    details = Details()
    assert await enrich_ranked([], details, lambda i, d: i, batch_size=50, limit=50) == []
    assert details.batches == []
