from dataclasses import dataclass, field


@dataclass(frozen=True)
class ScanResult:
    """
    Outcome of a scatter-gather scan.

    `items` holds (key, value) pairs in ascending key order. A key whose
    value was removed between the index query and the value lookup is
    reported with a None value.

    Partitions whose range query failed are listed in `failed_partitions`
    and contributed no keys. A partial result may miss keys that belong
    in the range: availability is preferred over completeness.
    """
    items: list[tuple[str, bytes | None]] = field(default_factory=list)
    failed_partitions: tuple[str, ...] = ()

    @property
    def partial(self) -> bool:
        return bool(self.failed_partitions)

    @property
    def keys(self) -> list[str]:
        return [key for key, _ in self.items]

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


@dataclass(frozen=True)
class RangeCount:
    """
    Outcome of a range count. Failed partitions contributed 0 to `total`.
    """
    total: int = 0
    failed_partitions: tuple[str, ...] = ()

    @property
    def partial(self) -> bool:
        return bool(self.failed_partitions)

    def __int__(self) -> int:
        return self.total
