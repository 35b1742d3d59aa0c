import logging

from zindex.core.models.stats import IndexStats
from zindex.core.ports.store import IndexStore
from zindex.core.space.buckets import BucketTable


class SkewDiagnostics:
    """
    Read-only report of how records are spread across partitions.

    A good hash spreads keys evenly; a partition holding several times
    the average points at a poor distribution or at adversarial keys
    concentrating on one routing code. The cardinality of every partition
    is fetched in batches of `batch_size` partitions, awaited one after
    the other, to bound the pressure put on the store.
    """
    def __init__(
        self,
        store: IndexStore,
        buckets: BucketTable,
        index_prefix: str,
        hash_chars: int,
        batch_size: int = 50,
    ) -> None:
        self._store = store
        self._buckets = buckets
        self._index_prefix = index_prefix
        self._hash_chars = hash_chars
        self._batch_size = batch_size
        self._logger = logging.getLogger("core.service.diagnostics")

    async def stats(self, include_detail: bool = False) -> IndexStats:
        sizes: dict[str, int] = {}
        failed: list[str] = []

        for codes, partitions in self._buckets.batches(self._batch_size):
            batch = self._store.pipeline()
            for partition in partitions:
                batch.cardinality(partition)

            results = await batch.execute()

            for code, partition, result in zip(codes, partitions, results):
                if isinstance(result, BaseException):
                    self._logger.error(
                        f"Cardinality query failed on partition {partition}: {result}"
                    )
                    failed.append(code)
                    continue
                sizes[code] = int(result or 0)

        return self._summarize(sizes, tuple(failed), include_detail)

    def _summarize(
        self,
        sizes: dict[str, int],
        failed: tuple[str, ...],
        include_detail: bool,
    ) -> IndexStats:
        total = sum(sizes.values())
        min_id = max_id = None
        min_size = max_size = 0

        if sizes:
            # First partition reaching the extreme wins ties.
            min_id = min(sizes, key=lambda code: sizes[code])
            min_size = sizes[min_id]
            max_size = max(sizes.values())
            if max_size > 0:
                max_id = max(sizes, key=lambda code: sizes[code])

        avg = round(total / len(sizes), 2) if sizes else 0.0

        return IndexStats(
            hash_chars=self._hash_chars,
            index_prefix=self._index_prefix,
            total_partitions=self._buckets.total_partitions,
            total_records=total,
            avg_per_partition=avg,
            min_per_partition=min_size,
            max_per_partition=max_size,
            empty_partition_count=sum(1 for size in sizes.values() if size == 0),
            min_partition_id=min_id,
            max_partition_id=max_id,
            per_partition_detail=dict(sizes) if include_detail else None,
            failed_partitions=failed,
        )
