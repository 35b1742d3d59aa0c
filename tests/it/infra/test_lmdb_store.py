import pytest

from tests.helpers import make_manager
from zindex.core.errors import RangeInferenceError, ValidationError
from zindex.infra.lmdb_store.aiobackend import LMDBIndexStore


@pytest.fixture
def store(tmp_path):
    return LMDBIndexStore(path=str(tmp_path), map_size=1 << 24)


async def fill(store, set_name, members):
    for member in members:
        await store.insert_member(set_name, member)


@pytest.mark.it
@pytest.mark.asyncio
async def test_store_scalar_operations(store):
    await store.set("a", b"1")
    await store.set("b", b"2")

    assert await store.get("a") == b"1"
    assert await store.mget(["a", "missing", "b"]) == [b"1", None, b"2"]

    await store.delete("a")
    assert await store.get("a") is None

    await store.close()


@pytest.mark.it
@pytest.mark.asyncio
async def test_store_lex_bounds(store):
    await fill(store, "idx:0", ["b", "a", "c", "d", "e"])

    assert await store.lex_range("idx:0", "-", "+", 10) == ["a", "b", "c", "d", "e"]
    assert await store.lex_range("idx:0", "[b", "[d", 10) == ["b", "c", "d"]
    assert await store.lex_range("idx:0", "(b", "(d", 10) == ["c"]
    assert await store.lex_range("idx:0", "[b", "+", 2) == ["b", "c"]
    assert await store.lex_range("idx:0", "-", "(c", 10) == ["a", "b"]
    assert await store.lex_range("idx:0", "[x", "+", 10) == []
    assert await store.lex_count("idx:0", "[b", "[d") == 3
    assert await store.lex_count("idx:0", "-", "+") == 5
    assert await store.cardinality("idx:0") == 5
    assert await store.cardinality("idx:empty") == 0

    await store.remove_member("idx:0", "c")
    assert await store.lex_range("idx:0", "-", "+", 10) == ["a", "b", "d", "e"]

    await store.close()


@pytest.mark.it
@pytest.mark.asyncio
async def test_store_members_are_a_set(store):
    await fill(store, "idx:0", ["a", "a", "a"])
    assert await store.cardinality("idx:0") == 1
    await store.close()


@pytest.mark.it
@pytest.mark.asyncio
async def test_store_indexed_writes(store):
    caps = await store.capabilities()
    assert caps.atomic_writes

    await store.add_indexed("user:1", "idx:1", b"v1")
    await store.add_indexed("user:2", "idx:2", b"v2")

    assert await store.get("user:1") == b"v1"
    assert await store.lex_range("idx:1", "-", "+", 10) == ["user:1"]

    await store.delete_indexed([("user:1", "idx:1"), ("user:2", "idx:2")])
    await store.delete_indexed([])

    assert await store.mget(["user:1", "user:2"]) == [None, None]
    assert await store.cardinality("idx:1") == 0
    assert await store.cardinality("idx:2") == 0

    await store.close()


@pytest.mark.it
@pytest.mark.asyncio
async def test_store_pipeline(store):
    batch = store.pipeline()
    batch.set("k", b"v")
    batch.insert_member("idx:0", "k")
    assert await batch.execute() == [None, None]

    batch = store.pipeline()
    batch.lex_range("idx:0", "-", "+", 10)
    batch.lex_count("idx:0", "-", "+")
    batch.cardinality("idx:1")
    assert await batch.execute() == [["k"], 1, 0]

    assert await store.pipeline().execute() == []

    await store.close()


@pytest.mark.it
@pytest.mark.asyncio
async def test_manager_on_lmdb(store):
    manager = await make_manager(store, hash_chars=1)
    assert manager.atomic

    for i in range(1, 6):
        await manager.add(f"user_{i:03d}", f"v{i}")
    await manager.add("order:1", "o1")

    items = await manager.scan("user_001", "user_005", 10)
    assert [k for k, _ in items] == [f"user_{i:03d}" for i in range(1, 6)]
    assert items[-1] == ("user_005", b"v5")

    assert await manager.count("user_") == 5
    assert await manager.count("order:") == 1
    with pytest.raises(RangeInferenceError):
        await manager.count("nosep")

    await manager.add("user_001", "again")
    assert await manager.count("user_001", "user_001") == 1
    assert await manager.get("user_001") == b"again"

    stats = await manager.stats(include_detail=True)
    assert stats.total_records == 6
    assert sum(stats.per_partition_detail.values()) == 6

    assert await manager.purge("user_") == 5
    assert await manager.count("user_") == 0
    assert await manager.get("order:1") == b"o1"

    await manager.close()


@pytest.mark.it
@pytest.mark.asyncio
async def test_store_rejects_oversized_keys(store):
    manager = await make_manager(store, hash_chars=1)
    key = "user:" + "x" * 600

    with pytest.raises(ValidationError):
        await manager.add(key, b"v")
    with pytest.raises(ValidationError):
        await store.get(key)
    with pytest.raises(ValidationError):
        await store.lex_range("idx:0", f"[{key}", "+", 10)

    await manager.add("user:1", b"v")
    assert await manager.count("user:") == 1
    assert await manager.get("user:1") == b"v"

    await manager.close()
