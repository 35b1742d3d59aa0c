import asyncio
import heapq
import itertools
import logging
from typing import AsyncIterator

from zindex.core.errors import ValidationError
from zindex.core.helpers.utils import chunked
from zindex.core.models.result import ScanResult
from zindex.core.ports.store import IndexStore
from zindex.core.query.range import LexRange, RangeInferencer
from zindex.core.space.buckets import BucketTable

MIN_SCAN_LIMIT = 1
MAX_SCAN_LIMIT = 1000


def validate_limit(limit: int) -> int:
    if (
        not isinstance(limit, int)
        or isinstance(limit, bool)
        or not MIN_SCAN_LIMIT <= limit <= MAX_SCAN_LIMIT
    ):
        raise ValidationError(
            f"limit must be an integer between {MIN_SCAN_LIMIT} and "
            f"{MAX_SCAN_LIMIT}, got {limit!r}"
        )
    return limit


class ScatterGatherScanner:
    """
    Ordered range scan over every partition of the index.

    Keys are spread across partitions by hash, so any range may have
    members in all of them. The scanner queries the partitions in batches
    of `scan_batch_size`, one pipelined round trip per batch, each
    partition returning at most `limit` members. After every batch the
    new members are merged into the running result, which is truncated
    back to `limit` keys: memory stays bounded by limit plus one batch
    worth of members instead of growing with the number of partitions.
    The surviving keys are finally resolved to values with concurrent
    multi-gets of `mget_batch_size` keys.

    A partition whose range query fails is logged and treated as empty:
    the scan still succeeds, and `ScanResult.failed_partitions` tells the
    caller the result may be incomplete. Only a failure of a whole round
    trip (BackendUnavailable) is raised.

    No snapshot is taken: records added or deleted concurrently may or
    may not show up.
    """
    def __init__(
        self,
        store: IndexStore,
        buckets: BucketTable,
        scan_batch_size: int = 50,
        mget_batch_size: int = 200,
    ) -> None:
        self._store = store
        self._buckets = buckets
        self._scan_batch_size = scan_batch_size
        self._mget_batch_size = mget_batch_size
        self._logger = logging.getLogger("core.service.scanner")

    async def scan(
        self,
        start_key: str,
        end_key: str | None = None,
        limit: int = 100,
    ) -> ScanResult:
        """
        Return up to `limit` records with keys in [start_key, end_key],
        sorted by key. Without `end_key`, the range is the namespace of
        `start_key` (see RangeInferencer).
        """
        validate_limit(limit)
        lex_range = RangeInferencer.infer(start_key, end_key)
        return await self.scan_range(lex_range, limit)

    async def scan_range(self, lex_range: LexRange, limit: int) -> ScanResult:
        validate_limit(limit)
        keys, failed = await self._gather_keys(lex_range, limit)
        if not keys:
            return ScanResult(items=[], failed_partitions=failed)

        values = await self._resolve_values(keys)
        return ScanResult(items=list(zip(keys, values)), failed_partitions=failed)

    async def iter_range(
        self,
        start_key: str,
        end_key: str | None = None,
        page_size: int = 100,
    ) -> AsyncIterator[tuple[str, bytes | None]]:
        """
        Stream every record of the range, fetching `page_size` records per
        scan. Each page resumes strictly after the last key of the previous
        one, so keys are neither repeated nor skipped, unless they are
        added or removed behind the cursor while iterating.
        """
        validate_limit(page_size)
        lex_range = RangeInferencer.infer(start_key, end_key)

        while True:
            page = await self.scan_range(lex_range, page_size)
            for item in page.items:
                yield item

            if len(page) < page_size:
                return

            lex_range = lex_range.after(page.items[-1][0])

    async def _gather_keys(
        self,
        lex_range: LexRange,
        limit: int,
    ) -> tuple[list[str], tuple[str, ...]]:
        merged: list[str] = []
        failed: list[str] = []

        for _, partitions in self._buckets.batches(self._scan_batch_size):
            batch = self._store.pipeline()
            for partition in partitions:
                batch.lex_range(partition, lex_range.start, lex_range.end, limit)

            results = await batch.execute()

            found: list[list[str]] = []
            for partition, result in zip(partitions, results):
                if isinstance(result, BaseException):
                    self._logger.error(
                        f"Range query failed on partition {partition}, "
                        f"treating it as empty: {result}"
                    )
                    failed.append(partition)
                    continue
                if result:
                    found.append(result)

            if found:
                # Each partition answers in ascending order: k-way merge,
                # then keep only the first `limit` keys.
                merged = list(
                    itertools.islice(heapq.merge(merged, *found), limit)
                )

        return merged, tuple(failed)

    async def _resolve_values(self, keys: list[str]) -> list[bytes | None]:
        chunks = chunked(keys, self._mget_batch_size)
        results = await asyncio.gather(
            *(self._store.mget(list(chunk)) for chunk in chunks)
        )
        return list(itertools.chain.from_iterable(results))
