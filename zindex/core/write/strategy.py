import asyncio
import logging
import warnings
from typing import Any, Protocol

from zindex.core.errors import ConsistencyRisk
from zindex.core.ports.store import IndexStore, StoreCapabilities

_RISK_MESSAGE = (
    "Writing without server-side atomicity: the value and its index entry "
    "are applied by independent requests. Data consistency is NOT guaranteed."
)


class WriteStrategy(Protocol):
    """
    How a record and its partition membership are written or removed
    together. Selected once, when the index is built.
    """

    @property
    def atomic(self) -> bool:
        """True when both effects are applied as one indivisible operation."""

    async def add(self, key: str, set_name: str, value: bytes) -> None:
        """Store `value` under `key` and register `key` in `set_name`."""

    async def delete(self, pairs: list[tuple[str, str]]) -> None:
        """Remove every key and deregister it from its partition."""


class ScriptedAtomicWrite:
    """
    Writes through the store's scripting facility. Both effects of an add,
    and all effects of a delete chunk, commit or fail together.
    """
    def __init__(self, store: IndexStore) -> None:
        self._store = store

    @property
    def atomic(self) -> bool:
        return True

    async def add(self, key: str, set_name: str, value: bytes) -> None:
        await self._store.add_indexed(key, set_name, value)

    async def delete(self, pairs: list[tuple[str, str]]) -> None:
        await self._store.delete_indexed(pairs)


class PipelinedBestEffortWrite:
    """
    Degraded write path for stores without scripting, or where a record
    and its partition cannot be colocated (sharded deployments).

    Each effect is an independent request, so a failure between them, or
    a concurrent add/delete of the same key, can leave a value without
    its index entry or the reverse. When `concurrent` is set the two
    effects of an add are issued in parallel instead of being pipelined,
    since a sharded store routes them to different nodes anyway.

    Every call emits a ConsistencyRisk warning. Failed effects are logged
    and the first failure is raised once all effects have settled.
    """
    def __init__(self, store: IndexStore, concurrent: bool = False) -> None:
        self._store = store
        self._concurrent = concurrent
        self._logger = logging.getLogger("core.write.strategy")

    @property
    def atomic(self) -> bool:
        return False

    async def add(self, key: str, set_name: str, value: bytes) -> None:
        warnings.warn(_RISK_MESSAGE, ConsistencyRisk, stacklevel=3)

        if self._concurrent:
            results = await asyncio.gather(
                self._store.set(key, value),
                self._store.insert_member(set_name, key),
                return_exceptions=True,
            )
        else:
            batch = self._store.pipeline()
            batch.set(key, value)
            batch.insert_member(set_name, key)
            results = await batch.execute()

        self._raise_on_failure("add", [key], results)

    async def delete(self, pairs: list[tuple[str, str]]) -> None:
        warnings.warn(_RISK_MESSAGE, ConsistencyRisk, stacklevel=3)

        batch = self._store.pipeline()
        for key, set_name in pairs:
            batch.delete(key)
            batch.remove_member(set_name, key)

        results = await batch.execute()
        self._raise_on_failure("delete", [key for key, _ in pairs], results)

    def _raise_on_failure(self, op: str, keys: list[str], results: list[Any]) -> None:
        failures = [r for r in results if isinstance(r, BaseException)]
        if not failures:
            return

        self._logger.error(
            f"Non-atomic {op} partially failed ({len(failures)}/{len(results)} "
            f"effects) for {len(keys)} key(s) starting at {keys[0]!r}; "
            "value and index may now disagree",
            exc_info=failures[0],
        )
        raise failures[0]


def select_write_strategy(
    store: IndexStore,
    capabilities: StoreCapabilities,
) -> WriteStrategy:
    """
    Pick the write strategy matching the probed store capabilities.
    """
    logger = logging.getLogger("core.write.strategy")

    if capabilities.atomic_writes:
        logger.debug("Store supports cross-key scripting, using atomic writes")
        return ScriptedAtomicWrite(store)

    if not capabilities.cross_key_atomicity:
        reason = "records and partitions cannot be colocated on this store"
    else:
        reason = "server-side scripting is not available"

    logger.warning(f"Falling back to non-atomic writes: {reason}. {_RISK_MESSAGE}")
    return PipelinedBestEffortWrite(
        store, concurrent=not capabilities.cross_key_atomicity
    )
