import bisect
from typing import Any

from zindex.core.errors import BackendUnavailable
from zindex.core.ports.store import StoreCapabilities
from zindex.core.query.range import LexRange


class PartitionDown(Exception):
    """Error injected for a failing partition."""


class FakeCommandBatch:
    def __init__(self, store: "FakeIndexStore") -> None:
        self._store = store
        self._commands: list[tuple[str, tuple]] = []

    def set(self, key, value):
        self._commands.append(("_set", (key, value)))

    def delete(self, key):
        self._commands.append(("_delete", (key,)))

    def insert_member(self, set_name, member):
        self._commands.append(("_insert_member", (set_name, member)))

    def remove_member(self, set_name, member):
        self._commands.append(("_remove_member", (set_name, member)))

    def lex_range(self, set_name, lex_start, lex_end, limit):
        self._commands.append(("_lex_range", (set_name, lex_start, lex_end, limit)))

    def lex_count(self, set_name, lex_start, lex_end):
        self._commands.append(("_lex_count", (set_name, lex_start, lex_end)))

    def cardinality(self, set_name):
        self._commands.append(("_cardinality", (set_name,)))

    async def execute(self) -> list[Any]:
        self._store.pipelines_executed += 1
        self._store.pipeline_sizes.append(len(self._commands))
        if self._store.down:
            raise BackendUnavailable("fake store is down")

        results = []
        for name, args in self._commands:
            try:
                results.append(getattr(self._store, name)(*args))
            except PartitionDown as ex:
                results.append(ex)
        return results


class FakeIndexStore:
    """
    In-memory IndexStore. Ordered sets are kept as sorted lists.

    `failing_sets` makes every command touching those sets fail,
    `failing_keys` does the same for scalar writes, `down` makes every
    call raise BackendUnavailable.
    """

    def __init__(
        self,
        scripting: bool = True,
        cross_key_atomicity: bool = True,
    ) -> None:
        self.values: dict[str, bytes] = {}
        self.sets: dict[str, list[str]] = {}
        self.failing_sets: set[str] = set()
        self.failing_keys: set[str] = set()
        self.down = False
        self.closed = False

        self._capabilities = StoreCapabilities(
            scripting=scripting,
            cross_key_atomicity=cross_key_atomicity,
        )
        self.capability_probes = 0
        self.pipelines_executed = 0
        self.pipeline_sizes: list[int] = []
        self.mget_calls: list[list[str]] = []
        self.scripted_adds = 0
        self.scripted_deletes: list[list[tuple[str, str]]] = []

    async def capabilities(self) -> StoreCapabilities:
        self.capability_probes += 1
        self._check_up()
        return self._capabilities

    def pipeline(self) -> FakeCommandBatch:
        return FakeCommandBatch(self)

    async def set(self, key, value):
        self._check_up()
        self._set(key, value)

    async def get(self, key):
        self._check_up()
        return self.values.get(key)

    async def mget(self, keys):
        self._check_up()
        self.mget_calls.append(list(keys))
        return [self.values.get(k) for k in keys]

    async def delete(self, key):
        self._check_up()
        self._delete(key)

    async def insert_member(self, set_name, member):
        self._check_up()
        self._insert_member(set_name, member)

    async def remove_member(self, set_name, member):
        self._check_up()
        self._remove_member(set_name, member)

    async def lex_range(self, set_name, lex_start, lex_end, limit):
        self._check_up()
        return self._lex_range(set_name, lex_start, lex_end, limit)

    async def lex_count(self, set_name, lex_start, lex_end):
        self._check_up()
        return self._lex_count(set_name, lex_start, lex_end)

    async def cardinality(self, set_name):
        self._check_up()
        return self._cardinality(set_name)

    async def add_indexed(self, key, set_name, value):
        self._check_up()
        if not self._capabilities.atomic_writes:
            raise AssertionError("scripted write on a store without atomic writes")
        self.scripted_adds += 1
        self._set(key, value)
        self._insert_member(set_name, key)

    async def delete_indexed(self, pairs):
        self._check_up()
        if not self._capabilities.atomic_writes:
            raise AssertionError("scripted delete on a store without atomic writes")
        self.scripted_deletes.append(list(pairs))
        for key, set_name in pairs:
            self._delete(key)
            self._remove_member(set_name, key)

    async def close(self):
        self.closed = True

    def members(self, set_name: str) -> list[str]:
        return list(self.sets.get(set_name, []))

    def all_members(self) -> list[str]:
        return sorted(m for members in self.sets.values() for m in members)

    def _check_up(self) -> None:
        if self.down:
            raise BackendUnavailable("fake store is down")

    def _check_set(self, set_name: str) -> None:
        if set_name in self.failing_sets:
            raise PartitionDown(f"partition {set_name} is down")

    def _set(self, key, value):
        if key in self.failing_keys:
            raise PartitionDown(f"key {key} cannot be written")
        self.values[key] = value

    def _delete(self, key):
        self.values.pop(key, None)

    def _insert_member(self, set_name, member):
        self._check_set(set_name)
        members = self.sets.setdefault(set_name, [])
        i = bisect.bisect_left(members, member)
        if i == len(members) or members[i] != member:
            members.insert(i, member)

    def _remove_member(self, set_name, member):
        self._check_set(set_name)
        members = self.sets.get(set_name, [])
        i = bisect.bisect_left(members, member)
        if i < len(members) and members[i] == member:
            members.pop(i)

    def _lex_range(self, set_name, lex_start, lex_end, limit):
        self._check_set(set_name)
        lex_range = LexRange(lex_start, lex_end)
        matches = [m for m in self.sets.get(set_name, []) if lex_range.contains(m)]
        return matches[:limit]

    def _lex_count(self, set_name, lex_start, lex_end):
        self._check_set(set_name)
        lex_range = LexRange(lex_start, lex_end)
        return sum(1 for m in self.sets.get(set_name, []) if lex_range.contains(m))

    def _cardinality(self, set_name):
        self._check_set(set_name)
        return len(self.sets.get(set_name, []))
