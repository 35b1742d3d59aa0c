from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class IndexStats:
    """
    Per-partition cardinality summary of an index.

    Partitions are identified by their routing code. Partitions whose
    cardinality query failed are listed in `failed_partitions` and left
    out of every figure, including the average.
    """
    hash_chars: int
    index_prefix: str
    total_partitions: int
    total_records: int = 0
    avg_per_partition: float = 0.0
    min_per_partition: int = 0
    max_per_partition: int = 0
    empty_partition_count: int = 0
    min_partition_id: str | None = None
    max_partition_id: str | None = None
    per_partition_detail: dict[str, int] | None = None
    failed_partitions: tuple[str, ...] = field(default_factory=tuple)

    @property
    def skew_ratio(self) -> float:
        """
        Ratio between the fullest partition and the average one.
        1.0 means perfectly even; 0.0 for an empty index.
        """
        if self.avg_per_partition == 0:
            return 0.0
        return self.max_per_partition / self.avg_per_partition

    def is_healthy(self, threshold: float = 3.0) -> bool:
        """
        Conventional health check: the fullest partition holds no more
        than `threshold` times the average. Advisory only.
        """
        return self.skew_ratio <= threshold

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "meta": {
                "hash_chars": self.hash_chars,
                "total_partitions": self.total_partitions,
                "index_prefix": self.index_prefix,
            },
            "stats": {
                "total_records": self.total_records,
                "avg_per_partition": self.avg_per_partition,
                "min_per_partition": self.min_per_partition,
                "max_per_partition": self.max_per_partition,
                "empty_partition_count": self.empty_partition_count,
            },
            "outliers": {
                "max_partition": {
                    "id": self.max_partition_id,
                    "count": self.max_per_partition,
                },
                "min_partition": {
                    "id": self.min_partition_id,
                    "count": self.min_per_partition,
                },
            },
            "failed_partitions": list(self.failed_partitions),
        }

        if self.per_partition_detail is not None:
            data["partitions"] = dict(self.per_partition_detail)

        return data
