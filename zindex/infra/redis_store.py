import contextlib
import logging
from collections.abc import Callable
from typing import Any, Generator

from redis.asyncio import Redis
from redis.asyncio.cluster import RedisCluster
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from zindex.core.errors import BackendUnavailable
from zindex.core.ports.store import StoreCapabilities

ADD_INDEXED_LUA = """
redis.call('SET', KEYS[1], ARGV[1])
redis.call('ZADD', KEYS[2], 0, KEYS[1])
"""

# KEYS = key1, set1, key2, set2, ...
DELETE_INDEXED_LUA = """
for i = 1, #KEYS, 2 do
  redis.call('DEL', KEYS[i])
  redis.call('ZREM', KEYS[i + 1], KEYS[i])
end
"""


@contextlib.contextmanager
def translate_errors() -> Generator[None, None, None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as ex:
        raise BackendUnavailable(f"Redis is unavailable: {ex}") from ex


def _as_str(member: bytes | str) -> str:
    if isinstance(member, bytes):
        return member.decode("utf-8")
    return member


def _members(raw: list[bytes | str] | None) -> list[str]:
    return [_as_str(m) for m in raw or ()]


def _as_int(raw: Any) -> int:
    return int(raw or 0)


def _ignore(_: Any) -> None:
    return None


class RedisCommandBatch:
    """
    Non-transactional Redis pipeline. Commands are sent in one round trip;
    errors of individual commands, including members that are not valid
    UTF-8, are returned in place of their results.
    """
    def __init__(self, pipeline: Any) -> None:
        self._pipeline = pipeline
        self._decoders: list[Callable[[Any], Any]] = []

    def set(self, key: str, value: bytes) -> None:
        self._pipeline.set(key, value)
        self._decoders.append(_ignore)

    def delete(self, key: str) -> None:
        self._pipeline.delete(key)
        self._decoders.append(_ignore)

    def insert_member(self, set_name: str, member: str) -> None:
        self._pipeline.zadd(set_name, {member: 0})
        self._decoders.append(_ignore)

    def remove_member(self, set_name: str, member: str) -> None:
        self._pipeline.zrem(set_name, member)
        self._decoders.append(_ignore)

    def lex_range(self, set_name: str, lex_start: str, lex_end: str, limit: int) -> None:
        self._pipeline.zrangebylex(set_name, lex_start, lex_end, start=0, num=limit)
        self._decoders.append(_members)

    def lex_count(self, set_name: str, lex_start: str, lex_end: str) -> None:
        self._pipeline.zlexcount(set_name, lex_start, lex_end)
        self._decoders.append(_as_int)

    def cardinality(self, set_name: str) -> None:
        self._pipeline.zcard(set_name)
        self._decoders.append(_as_int)

    async def execute(self) -> list[Any]:
        if not self._decoders:
            return []

        with translate_errors():
            raw = await self._pipeline.execute(raise_on_error=False)

        return [
            self._settle(decode, result)
            for decode, result in zip(self._decoders, raw)
        ]

    @staticmethod
    def _settle(decode: Callable[[Any], Any], result: Any) -> Any:
        if isinstance(result, BaseException):
            return result
        try:
            return decode(result)
        except UnicodeDecodeError as ex:
            return ex


class RedisIndexStore:
    """
    IndexStore backed by a redis.asyncio client, standalone or cluster.

    Values are kept as raw bytes; the client should be created with
    decode_responses=False. Partitions are sorted sets whose members all
    carry the score 0, which makes ZRANGEBYLEX and ZLEXCOUNT usable.

    Atomic writes rely on Lua scripts touching both the record key and
    its partition key. On Redis Cluster the two keys generally hash to
    different slots (the script would fail with CROSSSLOT), so a cluster
    client never reports cross-key atomicity and the index falls back to
    independent writes.
    """
    def __init__(self, client: Redis | RedisCluster) -> None:
        self._client = client
        self._cluster = isinstance(client, RedisCluster)
        self._add_script = None
        self._delete_script = None
        if not self._cluster:
            self._add_script = client.register_script(ADD_INDEXED_LUA)
            self._delete_script = client.register_script(DELETE_INDEXED_LUA)
        self._logger = logging.getLogger("infra.redis_store")

    @classmethod
    def from_url(cls, url: str, cluster: bool = False, **kwargs: Any) -> "RedisIndexStore":
        kwargs.setdefault("decode_responses", False)
        if cluster:
            client = RedisCluster.from_url(url, **kwargs)
        else:
            client = Redis.from_url(url, **kwargs)
        return cls(client)

    @property
    def is_cluster(self) -> bool:
        return self._cluster

    async def capabilities(self) -> StoreCapabilities:
        if self._cluster:
            return StoreCapabilities(scripting=False, cross_key_atomicity=False)

        scripting = True
        try:
            with translate_errors():
                await self._client.script_load(ADD_INDEXED_LUA)
                await self._client.script_load(DELETE_INDEXED_LUA)
        except ResponseError as ex:
            self._logger.warning(f"Lua scripting is not available: {ex}")
            scripting = False

        return StoreCapabilities(scripting=scripting, cross_key_atomicity=True)

    def pipeline(self) -> RedisCommandBatch:
        if self._cluster:
            return RedisCommandBatch(self._client.pipeline())
        return RedisCommandBatch(self._client.pipeline(transaction=False))

    async def set(self, key: str, value: bytes) -> None:
        with translate_errors():
            await self._client.set(key, value)

    async def get(self, key: str) -> bytes | None:
        with translate_errors():
            return await self._client.get(key)

    async def mget(self, keys: list[str]) -> list[bytes | None]:
        if not keys:
            return []

        with translate_errors():
            if self._cluster:
                return await self._client.mget_nonatomic(keys)
            return await self._client.mget(keys)

    async def delete(self, key: str) -> None:
        with translate_errors():
            await self._client.delete(key)

    async def insert_member(self, set_name: str, member: str) -> None:
        with translate_errors():
            await self._client.zadd(set_name, {member: 0})

    async def remove_member(self, set_name: str, member: str) -> None:
        with translate_errors():
            await self._client.zrem(set_name, member)

    async def lex_range(
        self,
        set_name: str,
        lex_start: str,
        lex_end: str,
        limit: int,
    ) -> list[str]:
        with translate_errors():
            raw = await self._client.zrangebylex(
                set_name, lex_start, lex_end, start=0, num=limit
            )
        return _members(raw)

    async def lex_count(self, set_name: str, lex_start: str, lex_end: str) -> int:
        with translate_errors():
            return _as_int(await self._client.zlexcount(set_name, lex_start, lex_end))

    async def cardinality(self, set_name: str) -> int:
        with translate_errors():
            return _as_int(await self._client.zcard(set_name))

    async def add_indexed(self, key: str, set_name: str, value: bytes) -> None:
        if self._add_script is None:
            raise RuntimeError("Scripted writes are not available on Redis Cluster")

        with translate_errors():
            await self._add_script(keys=[key, set_name], args=[value])

    async def delete_indexed(self, pairs: list[tuple[str, str]]) -> None:
        if self._delete_script is None:
            raise RuntimeError("Scripted writes are not available on Redis Cluster")

        if not pairs:
            return

        keys: list[str] = []
        for key, set_name in pairs:
            keys.extend((key, set_name))

        with translate_errors():
            await self._delete_script(keys=keys, args=[])

    async def close(self) -> None:
        with translate_errors():
            await self._client.aclose()
