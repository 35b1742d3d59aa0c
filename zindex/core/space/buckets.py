from zindex.core.space.hashing import KeyHasher


class BucketTable:
    """
    Enumerates the partitions of the index and routes keys to them.

    With a routing code of `hash_chars` hex digits, the index is split
    into 16^hash_chars ordered sets named index_prefix + code, the code
    being zero-padded to the full width. The enumeration is computed once
    and reused by every fan-out operation; it never changes during the
    lifetime of the table.
    """
    def __init__(self, index_prefix: str, hasher: KeyHasher) -> None:
        self._index_prefix = index_prefix
        self._hasher = hasher

        width = hasher.hash_chars
        self._codes: tuple[str, ...] = tuple(
            format(i, "x").zfill(width) for i in range(16 ** width)
        )
        self._partitions: tuple[str, ...] = tuple(
            self.partition_name(code) for code in self._codes
        )

    @property
    def total_partitions(self) -> int:
        return len(self._codes)

    @property
    def routing_codes(self) -> tuple[str, ...]:
        """
        All routing codes, in ascending order.
        """
        return self._codes

    def all_partitions(self) -> tuple[str, ...]:
        """
        All partition identifiers, aligned with `routing_codes`.
        """
        return self._partitions

    def partition_name(self, code: str) -> str:
        return f"{self._index_prefix}{code}"

    def partition_for(self, key: str) -> str:
        """
        Return the identifier of the single partition that may hold `key`.
        """
        return self.partition_name(self._hasher.routing_code(key))

    def batches(self, size: int) -> list[tuple[tuple[str, ...], tuple[str, ...]]]:
        """
        Split the enumeration into consecutive batches of at most `size`
        partitions. Each batch is returned as (routing codes, partition names).
        """
        return [
            (self._codes[i:i + size], self._partitions[i:i + size])
            for i in range(0, len(self._codes), size)
        ]
