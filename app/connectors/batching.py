"""Staylytics - Ranked Batch Enrichment.

Reports that rank ids in one call and fetch details in a second, batched
call (YouTube top content) go through ``enrich_ranked``. The output keeps
the rank order of ``ids`` no matter how batches complete, and stops issuing
batches once ``limit`` items are collected.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence, TypeVar

from app.core.logging import get_logger

logger = get_logger("connectors.batching")

T = TypeVar("T")

ItemErrors = (KeyError, TypeError, ValueError, AttributeError)


def chunked(items: Sequence[Any], size: int) -> List[List[Any]]:
    if size <= 0:
        raise ValueError("batch size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def enrich_ranked(
    ids: Sequence[str],
    fetch_batch: Callable[[List[str]], Awaitable[Mapping[str, Any]]],
    build_item: Callable[[str, Any], Optional[T]],
    batch_size: int,
    limit: int,
    concurrency: int = 1,
    source: str = "",
) -> List[T]:
    """Enrich ranked ``ids`` in batches and return at most ``limit`` items.

    ``fetch_batch`` returns details keyed by id. ``build_item`` turns one
    detail into an output item, or ``None`` to filter it out. An item whose
    detail is missing or fails to build is skipped with a warning; a failed
    ``fetch_batch`` call propagates. Batches run ``concurrency`` at a time and
    the limit is checked only once every batch in flight is fully processed.
    """
    batches = chunked(ids, batch_size)
    results: List[T] = []
    step = max(concurrency, 1)

    for wave_start in range(0, len(batches), step):
        wave = batches[wave_start : wave_start + step]
        # gather returns in submission order, which is rank order
        details = await asyncio.gather(*(fetch_batch(batch) for batch in wave))

        for batch, detail_map in zip(wave, details):
            for item_id in batch:
                detail = detail_map.get(item_id)
                if detail is None:
                    logger.warning(
                        f"No detail returned for {item_id}, skipping",
                        extra={"source": source},
                    )
                    continue
                try:
                    item = build_item(item_id, detail)
                except ItemErrors as e:
                    logger.warning(
                        f"Could not enrich {item_id}: {e!r}, skipping",
                        extra={"source": source},
                    )
                    continue
                if item is not None:
                    results.append(item)

        if len(results) >= limit:
            break

    return results[:limit]
