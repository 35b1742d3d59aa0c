from zindex.core.facade import IndexManager
from zindex.core.models.config import IndexConfig
from zindex.core.space.buckets import BucketTable
from zindex.core.space.hashing import KeyHasher


async def make_manager(store, **config) -> IndexManager:
    return await IndexManager.create(store, IndexConfig(**config))


def make_buckets(hash_chars: int = 2, prefix: str = "idx:") -> BucketTable:
    return BucketTable(prefix, KeyHasher(hash_chars))


def keys_spanning_partitions(buckets: BucketTable, prefix: str, count: int) -> list[str]:
    """Generate `count` zero-padded keys and check they hit several partitions."""
    keys = [f"{prefix}{i:05d}" for i in range(count)]
    assert len({buckets.partition_for(k) for k in keys}) > 1
    return keys
