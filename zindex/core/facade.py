import logging
from collections.abc import Iterable
from typing import AsyncIterator

from zindex.core.connections.connector import StoreConnector
from zindex.core.models.config import IndexConfig
from zindex.core.models.result import RangeCount, ScanResult
from zindex.core.models.stats import IndexStats
from zindex.core.ports.store import IndexStore, StoreCapabilities
from zindex.core.service.counter import RangeCounter
from zindex.core.service.diagnostics import SkewDiagnostics
from zindex.core.service.scanner import ScatterGatherScanner, validate_limit
from zindex.core.service.writer import AtomicWriteBackend
from zindex.core.space.buckets import BucketTable
from zindex.core.space.hashing import KeyHasher
from zindex.core.write.strategy import select_write_strategy


class IndexManager:
    """
    Ordered secondary index over a hash-table store.

    Records are stored as plain keys; their keys are additionally
    registered as members of one of 16^hash_chars ordered sets, chosen by
    a hash of the key. Spreading the index this way avoids turning a
    single ordered set into a hotspot, at the cost of visiting every
    partition on each scan or count.

    Build instances with `create` (already connected store) or `open`
    (lazy connector): both probe the store once and select the write
    strategy for the lifetime of the manager.

    Consistency: with an atomic write strategy, a key has a value if and
    only if it is registered in its partition. With the non-atomic
    fallback (no scripting, or sharded store) a partial failure can break
    that pairing; such writes emit a ConsistencyRisk warning. Scans and
    counts tolerate failing partitions, see `scan_detailed` and
    `count_detailed` to detect incomplete answers.
    """
    def __init__(
        self,
        store: IndexStore,
        config: IndexConfig,
        capabilities: StoreCapabilities,
    ) -> None:
        self._store = store
        self._config = config
        self._capabilities = capabilities

        self._hasher = KeyHasher(config.hash_chars)
        self._buckets = BucketTable(config.index_prefix, self._hasher)
        self._writer = AtomicWriteBackend(
            buckets=self._buckets,
            strategy=select_write_strategy(store, capabilities),
            delete_batch_size=config.delete_batch_size,
        )
        self._scanner = ScatterGatherScanner(
            store=store,
            buckets=self._buckets,
            scan_batch_size=config.scan_batch_size,
            mget_batch_size=config.mget_batch_size,
        )
        self._counter = RangeCounter(store=store, buckets=self._buckets)
        self._diagnostics = SkewDiagnostics(
            store=store,
            buckets=self._buckets,
            index_prefix=config.index_prefix,
            hash_chars=config.hash_chars,
            batch_size=config.scan_batch_size,
        )
        self._connector: StoreConnector | None = None
        self._logger = logging.getLogger("core.facade")

    @classmethod
    async def create(
        cls,
        store: IndexStore,
        config: IndexConfig | None = None,
    ) -> "IndexManager":
        config = config or IndexConfig()
        capabilities = await store.capabilities()
        return cls(store, config, capabilities)

    @classmethod
    async def open(
        cls,
        connector: StoreConnector,
        config: IndexConfig | None = None,
    ) -> "IndexManager":
        store = await connector.acquire()
        try:
            manager = await cls.create(store, config)
        except BaseException:
            await connector.close()
            raise
        manager._connector = connector
        return manager

    @property
    def config(self) -> IndexConfig:
        return self._config

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._capabilities

    @property
    def atomic(self) -> bool:
        return self._writer.atomic

    @property
    def partitions(self) -> tuple[str, ...]:
        return self._buckets.all_partitions()

    def routing_code(self, key: str) -> str:
        return self._hasher.routing_code(key)

    def partition_for(self, key: str) -> str:
        return self._buckets.partition_for(key)

    async def add(self, key: str, value: bytes | str) -> None:
        await self._writer.add(key, value)

    async def delete(self, keys: str | Iterable[str]) -> int:
        return await self._writer.delete(keys)

    async def get(self, key: str) -> bytes | None:
        return await self._store.get(key)

    async def scan(
        self,
        start_key: str,
        end_key: str | None = None,
        limit: int = 100,
    ) -> list[tuple[str, bytes | None]]:
        result = await self._scanner.scan(start_key, end_key, limit)
        return result.items

    async def scan_detailed(
        self,
        start_key: str,
        end_key: str | None = None,
        limit: int = 100,
    ) -> ScanResult:
        return await self._scanner.scan(start_key, end_key, limit)

    def iter_range(
        self,
        start_key: str,
        end_key: str | None = None,
        page_size: int = 100,
    ) -> AsyncIterator[tuple[str, bytes | None]]:
        return self._scanner.iter_range(start_key, end_key, page_size)

    async def count(self, start_key: str, end_key: str | None = None) -> int:
        result = await self._counter.count(start_key, end_key)
        return result.total

    async def count_detailed(
        self,
        start_key: str,
        end_key: str | None = None,
    ) -> RangeCount:
        return await self._counter.count(start_key, end_key)

    async def stats(self, include_detail: bool = False) -> IndexStats:
        return await self._diagnostics.stats(include_detail)

    async def purge(
        self,
        start_key: str,
        end_key: str | None = None,
        page_size: int = 500,
    ) -> int:
        """
        Delete every record of the range, one page at a time.
        Returns the number of keys deleted.
        """
        validate_limit(page_size)
        deleted = 0
        page: list[str] = []

        async for key, _ in self.iter_range(start_key, end_key, page_size):
            page.append(key)
            if len(page) >= page_size:
                deleted += await self.delete(page)
                page = []

        if page:
            deleted += await self.delete(page)

        self._logger.info(f"Purged {deleted} keys from range starting at {start_key!r}")
        return deleted

    async def close(self) -> None:
        if self._connector is not None:
            await self._connector.close()
        else:
            await self._store.close()
