from dataclasses import dataclass

from zindex.core.errors import ConfigError


@dataclass(frozen=True)
class IndexConfig:
    """
    Static configuration of a bucketed secondary index.

    The layout of the partitions on the store depends on `index_prefix`
    and `hash_chars`: changing either one after data has been written
    requires a re-bucketing migration.
    """

    index_prefix: str = "idx:"
    """
    Namespace of the partition identifiers. A partition is stored under
    index_prefix + routing code.
    """

    hash_chars: int = 2
    """
    Number of hex digits of the key digest used as routing code.
    Only 1 (16 partitions) and 2 (256 partitions) are accepted: every scan
    and count visits every partition.
    """

    scan_batch_size: int = 50
    """
    Number of partitions queried per round trip by scans and diagnostics.
    """

    mget_batch_size: int = 200
    """
    Number of keys resolved per multi-get when a scan fetches values.
    """

    delete_batch_size: int = 1000
    """
    Number of keys removed per scripted or pipelined call of a batch delete.
    """

    def __post_init__(self) -> None:
        if (
            not isinstance(self.hash_chars, int)
            or isinstance(self.hash_chars, bool)
            or self.hash_chars not in (1, 2)
        ):
            raise ConfigError(
                f"hash_chars must be 1 or 2, got {self.hash_chars!r}"
            )

        for name in ("scan_batch_size", "mget_batch_size", "delete_batch_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

        if not isinstance(self.index_prefix, str):
            raise ConfigError(
                f"index_prefix must be a string, got {type(self.index_prefix).__name__}"
            )

    @property
    def total_partitions(self) -> int:
        return 16 ** self.hash_chars
