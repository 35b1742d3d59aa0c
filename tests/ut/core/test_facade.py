import pytest

from tests.fake.fake_store import FakeIndexStore, PartitionDown
from tests.helpers import make_manager
from zindex.core.connections.connector import ConnectorState, StoreConnector
from zindex.core.errors import (
    BackendUnavailable,
    ConsistencyRisk,
    RangeInferenceError,
    ValidationError,
)
from zindex.core.facade import IndexManager
from zindex.core.models.config import IndexConfig


@pytest.mark.ut
@pytest.mark.asyncio
async def test_create_probes_capabilities_once(store):
    manager = await make_manager(store, hash_chars=1)

    assert store.capability_probes == 1
    assert manager.atomic
    assert manager.capabilities.atomic_writes
    assert manager.config.hash_chars == 1
    assert len(manager.partitions) == 16


@pytest.mark.ut
@pytest.mark.asyncio
async def test_create_fails_when_store_is_down(store):
    store.down = True
    with pytest.raises(BackendUnavailable):
        await make_manager(store)


@pytest.mark.ut
@pytest.mark.asyncio
async def test_add_registers_key_in_its_partition(store):
    manager = await make_manager(store)

    await manager.add("user:42", b"payload")

    partition = manager.partition_for("user:42")
    assert partition == f"idx:{manager.routing_code('user:42')}"
    assert await manager.get("user:42") == b"payload"
    assert [p for p in manager.partitions if "user:42" in store.members(p)] == [partition]


@pytest.mark.ut
@pytest.mark.asyncio
async def test_readd_overwrites_value_keeps_one_membership(store):
    manager = await make_manager(store, hash_chars=1)

    await manager.add("k", "v1")
    await manager.add("k", "v2")

    assert await manager.count("k", "k") == 1
    assert await manager.get("k") == b"v2"
    assert store.all_members() == ["k"]


@pytest.mark.ut
@pytest.mark.asyncio
async def test_delete_removes_value_and_membership(store):
    manager = await make_manager(store)
    await manager.add("user:1", b"a")
    await manager.add("user:2", b"b")

    assert await manager.delete("user:1") == 1

    assert await manager.get("user:1") is None
    assert store.all_members() == ["user:2"]


@pytest.mark.ut
@pytest.mark.asyncio
async def test_scan_explicit_range(store):
    manager = await make_manager(store, hash_chars=1)
    for i in range(1, 6):
        await manager.add(f"user_{i:03d}", f"v{i}")
    await manager.add("user_006", "v6")

    items = await manager.scan("user_001", "user_005", 10)

    assert [k for k, _ in items] == [f"user_{i:03d}" for i in range(1, 6)]
    assert items[-1] == ("user_005", b"v5")


@pytest.mark.ut
@pytest.mark.asyncio
async def test_scan_is_sorted_bounded_and_within_range(store):
    manager = await make_manager(store, hash_chars=1)
    keys = [f"doc:{i:04d}" for i in range(0, 400, 7)]
    for key in reversed(keys):
        await manager.add(key, b"x")

    items = await manager.scan("doc:0100", "doc:0300", 20)

    returned = [k for k, _ in items]
    assert len(returned) == 20
    assert returned == sorted(set(returned))
    assert all("doc:0100" <= k <= "doc:0300" for k in returned)
    assert returned == [k for k in keys if "doc:0100" <= k <= "doc:0300"][:20]


@pytest.mark.ut
@pytest.mark.asyncio
async def test_scan_rejects_bad_input(store):
    manager = await make_manager(store)

    with pytest.raises(RangeInferenceError):
        await manager.scan("missingprefix", None, 10)
    with pytest.raises(ValidationError):
        await manager.scan("user:", None, 1001)
    with pytest.raises(ValidationError):
        await manager.scan("user:", None, 0)
    with pytest.raises(ValidationError):
        await manager.scan("user:b", "user:a", 10)


@pytest.mark.ut
@pytest.mark.asyncio
async def test_batch_delete_in_chunks(store):
    manager = await make_manager(store, hash_chars=2)
    keys = [f"batch:{i:05d}" for i in range(2500)]
    for key in keys:
        await manager.add(key, b"x")
    assert await manager.count("batch:") == 2500

    assert await manager.delete(keys) == 2500

    assert await manager.count("batch:") == 0
    assert [len(c) for c in store.scripted_deletes] == [1000, 1000, 500]
    assert store.values == {}


@pytest.mark.ut
@pytest.mark.asyncio
async def test_count_and_scan_report_partial_results(store):
    manager = await make_manager(store, hash_chars=1)
    for i in range(50):
        await manager.add(f"p:{i:03d}", b"x")
    broken = manager.partition_for("p:000")
    store.failing_sets.add(broken)

    count = await manager.count_detailed("p:")
    scan = await manager.scan_detailed("p:", limit=100)

    assert count.partial and count.failed_partitions == (broken,)
    assert scan.partial and scan.failed_partitions == (broken,)
    assert count.total == len(scan)
    assert "p:000" not in scan.keys
    assert await manager.count("p:") == count.total


@pytest.mark.ut
@pytest.mark.asyncio
async def test_iter_range_walks_the_whole_range(store):
    manager = await make_manager(store, hash_chars=1)
    keys = [f"log:{i:04d}" for i in range(130)]
    for key in keys:
        await manager.add(key, key)

    seen = [(k, v) async for k, v in manager.iter_range("log:", page_size=25)]

    assert [k for k, _ in seen] == keys
    assert all(v == k.encode() for k, v in seen)


@pytest.mark.ut
@pytest.mark.asyncio
async def test_purge_deletes_the_range_only(store):
    manager = await make_manager(store, hash_chars=1, delete_batch_size=40)
    for i in range(120):
        await manager.add(f"tmp:{i:04d}", b"x")
    await manager.add("keep:1", b"y")

    assert await manager.purge("tmp:", page_size=50) == 120

    assert await manager.count("tmp:") == 0
    assert store.all_members() == ["keep:1"]
    assert await manager.get("keep:1") == b"y"


@pytest.mark.ut
@pytest.mark.asyncio
async def test_stats_through_manager(store):
    manager = await make_manager(store, hash_chars=2)
    for i in range(300):
        await manager.add(f"user:{i:05d}", b"x")

    stats = await manager.stats(include_detail=True)

    assert stats.total_records == 300
    assert sum(stats.per_partition_detail.values()) == 300
    assert stats.index_prefix == "idx:"


@pytest.mark.ut
@pytest.mark.asyncio
async def test_sharded_store_uses_best_effort_writes(sharded_store):
    manager = await make_manager(sharded_store, hash_chars=1)
    assert not manager.atomic

    with pytest.warns(ConsistencyRisk):
        await manager.add("a:1", b"x")
    with pytest.warns(ConsistencyRisk):
        await manager.delete(["a:1"])

    assert sharded_store.scripted_adds == 0
    assert sharded_store.all_members() == []
    assert sharded_store.values == {}


@pytest.mark.ut
@pytest.mark.asyncio
async def test_best_effort_partial_failure_is_raised(scriptless_store):
    manager = await make_manager(scriptless_store, hash_chars=1)
    scriptless_store.failing_keys.add("a:1")

    with pytest.warns(ConsistencyRisk):
        with pytest.raises(PartitionDown):
            await manager.add("a:1", b"x")

    # The index entry went through without its value.
    assert scriptless_store.all_members() == ["a:1"]
    assert await manager.get("a:1") is None
    assert await manager.scan("a:", None, 10) == [("a:1", None)]


@pytest.mark.ut
@pytest.mark.asyncio
async def test_open_through_connector_and_close():
    stores = []

    async def factory():
        store = FakeIndexStore()
        stores.append(store)
        return store

    connector = StoreConnector(factory)
    manager = await IndexManager.open(connector, IndexConfig(hash_chars=1))
    await manager.add("c:1", b"x")

    await manager.close()

    assert len(stores) == 1
    assert stores[0].closed
    assert connector.state == ConnectorState.closed


@pytest.mark.ut
@pytest.mark.asyncio
async def test_close_without_connector_closes_store(store):
    manager = await IndexManager.create(store)

    await manager.close()

    assert store.closed


@pytest.mark.ut
@pytest.mark.asyncio
async def test_open_closes_connector_when_probe_fails():
    store = FakeIndexStore()

    async def factory():
        store.down = True
        return store

    connector = StoreConnector(factory)

    with pytest.raises(BackendUnavailable):
        await IndexManager.open(connector)

    assert store.closed
    assert connector.state == ConnectorState.closed
