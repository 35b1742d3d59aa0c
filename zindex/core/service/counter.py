import logging

from zindex.core.models.result import RangeCount
from zindex.core.ports.store import IndexStore
from zindex.core.query.range import LexRange, RangeInferencer
from zindex.core.space.buckets import BucketTable


class RangeCounter:
    """
    Exact count of the keys in a range, across all partitions.

    Counting is done by the store (one lexicographic count per partition)
    and only integers travel back, so every partition is queried in the
    same round trip. A partition whose count fails is logged and counts
    as 0; `RangeCount.failed_partitions` flags the total as a lower bound.
    """
    def __init__(self, store: IndexStore, buckets: BucketTable) -> None:
        self._store = store
        self._buckets = buckets
        self._logger = logging.getLogger("core.service.counter")

    async def count(self, start_key: str, end_key: str | None = None) -> RangeCount:
        lex_range = RangeInferencer.infer(start_key, end_key)
        return await self.count_range(lex_range)

    async def count_range(self, lex_range: LexRange) -> RangeCount:
        partitions = self._buckets.all_partitions()

        batch = self._store.pipeline()
        for partition in partitions:
            batch.lex_count(partition, lex_range.start, lex_range.end)

        results = await batch.execute()

        total = 0
        failed: list[str] = []
        for partition, result in zip(partitions, results):
            if isinstance(result, BaseException):
                self._logger.error(
                    f"Range count failed on partition {partition}, "
                    f"counting it as 0: {result}"
                )
                failed.append(partition)
                continue
            total += int(result or 0)

        return RangeCount(total=total, failed_partitions=tuple(failed))
