import asyncio
import contextlib
from concurrent.futures import ThreadPoolExecutor
from typing import Any, AsyncGenerator, Callable

import lmdb

from zindex.core.errors import BackendUnavailable
from zindex.core.ports.store import StoreCapabilities
from zindex.infra.lmdb_store.backend import LMDBBackend

_WRITE_COMMANDS = frozenset({"set", "delete", "insert_member", "remove_member"})


@contextlib.asynccontextmanager
async def translate_errors() -> AsyncGenerator[None, None]:
    try:
        yield
    except lmdb.Error as ex:
        raise BackendUnavailable(f"LMDB store failed: {ex}") from ex


class LMDBCommandBatch:
    """
    Queued commands run in one worker call. Batches containing a write go
    through the single writer thread.
    """
    def __init__(self, store: "LMDBIndexStore") -> None:
        self._store = store
        self._commands: list[tuple[str, tuple[Any, ...]]] = []

    def set(self, key: str, value: bytes) -> None:
        self._commands.append(("set", (key, value)))

    def delete(self, key: str) -> None:
        self._commands.append(("delete", (key,)))

    def insert_member(self, set_name: str, member: str) -> None:
        self._commands.append(("insert_member", (set_name, member)))

    def remove_member(self, set_name: str, member: str) -> None:
        self._commands.append(("remove_member", (set_name, member)))

    def lex_range(self, set_name: str, lex_start: str, lex_end: str, limit: int) -> None:
        self._commands.append(("lex_range", (set_name, lex_start, lex_end, limit)))

    def lex_count(self, set_name: str, lex_start: str, lex_end: str) -> None:
        self._commands.append(("lex_count", (set_name, lex_start, lex_end)))

    def cardinality(self, set_name: str) -> None:
        self._commands.append(("cardinality", (set_name,)))

    async def execute(self) -> list[Any]:
        if not self._commands:
            return []

        write = any(name in _WRITE_COMMANDS for name, _ in self._commands)
        return await self._store.run_batch(list(self._commands), write=write)


class LMDBIndexStore:
    """
    Embedded IndexStore on LMDB, for single-process deployments and tests
    that need a real ordered store.

    LMDB is synchronous: reads run on a small thread pool and writes on a
    single writer thread, keeping the event loop free. Combined writes run
    in one LMDB transaction, so the store reports both scripting and
    cross-key atomicity.
    """
    def __init__(
        self,
        path: str,
        map_size: int = 1 << 30,
        max_dbs: int = 512,
        readahead: bool = True,
        writemap: bool = False,
        sync: bool = True,
        lock: bool = True,
        max_readers: int = 4,
    ) -> None:
        self._backend = LMDBBackend(
            path=path,
            map_size=map_size,
            max_dbs=max_dbs,
            readahead=readahead,
            writemap=writemap,
            sync=sync,
            lock=lock,
        )
        self._read_pool = ThreadPoolExecutor(max_workers=max_readers)
        self._write_pool = ThreadPoolExecutor(max_workers=1)

    async def capabilities(self) -> StoreCapabilities:
        return StoreCapabilities(scripting=True, cross_key_atomicity=True)

    def pipeline(self) -> LMDBCommandBatch:
        return LMDBCommandBatch(self)

    async def run_batch(
        self,
        commands: list[tuple[str, tuple[Any, ...]]],
        write: bool,
    ) -> list[Any]:
        pool = self._write_pool if write else self._read_pool
        return await self._run(pool, self._backend.run_batch, commands)

    async def set(self, key: str, value: bytes) -> None:
        await self._run(self._write_pool, self._backend.set, key, value)

    async def get(self, key: str) -> bytes | None:
        return await self._run(self._read_pool, self._backend.get, key)

    async def mget(self, keys: list[str]) -> list[bytes | None]:
        return await self._run(self._read_pool, self._backend.mget, keys)

    async def delete(self, key: str) -> None:
        await self._run(self._write_pool, self._backend.delete, key)

    async def insert_member(self, set_name: str, member: str) -> None:
        await self._run(self._write_pool, self._backend.insert_member, set_name, member)

    async def remove_member(self, set_name: str, member: str) -> None:
        await self._run(self._write_pool, self._backend.remove_member, set_name, member)

    async def lex_range(
        self,
        set_name: str,
        lex_start: str,
        lex_end: str,
        limit: int,
    ) -> list[str]:
        return await self._run(
            self._read_pool, self._backend.lex_range, set_name, lex_start, lex_end, limit
        )

    async def lex_count(self, set_name: str, lex_start: str, lex_end: str) -> int:
        return await self._run(
            self._read_pool, self._backend.lex_count, set_name, lex_start, lex_end
        )

    async def cardinality(self, set_name: str) -> int:
        return await self._run(self._read_pool, self._backend.cardinality, set_name)

    async def add_indexed(self, key: str, set_name: str, value: bytes) -> None:
        await self._run(self._write_pool, self._backend.add_indexed, key, set_name, value)

    async def delete_indexed(self, pairs: list[tuple[str, str]]) -> None:
        if not pairs:
            return
        await self._run(self._write_pool, self._backend.delete_indexed, pairs)

    async def close(self) -> None:
        def shutdown() -> None:
            self._read_pool.shutdown(wait=True)
            self._write_pool.shutdown(wait=True)
            self._backend.close()

        await asyncio.to_thread(shutdown)

    @staticmethod
    async def _run(pool: ThreadPoolExecutor, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        async with translate_errors():
            return await loop.run_in_executor(pool, fn, *args)
