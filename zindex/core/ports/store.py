from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class StoreCapabilities:
    """
    Result of the capability probe run once when an index is built.

    The write strategy of the index is selected from these two flags and
    never re-evaluated afterwards.
    """
    scripting: bool
    """
    The store can run a server-side script touching several keys as one
    indivisible operation.
    """

    cross_key_atomicity: bool
    """
    A record key and its partition key are guaranteed to live in the same
    transaction domain. False on sharded deployments where the two keys
    can be placed on different nodes.
    """

    @property
    def atomic_writes(self) -> bool:
        return self.scripting and self.cross_key_atomicity


class ScalarStore(Protocol):
    """
    Hash-table side of the backing store: one opaque value per key.

    Implementations must not raise for missing keys. Transport failures
    are reported as BackendUnavailable.
    """

    async def set(self, key: str, value: bytes) -> None:
        """
        Store `value` under `key`, replacing any previous value.
        """

    async def get(self, key: str) -> bytes | None:
        """
        Return the value stored under `key`, or None if it does not exist.
        """

    async def mget(self, keys: list[str]) -> list[bytes | None]:
        """
        Return the values of `keys`, aligned by index. Missing keys are
        reported as None.
        """

    async def delete(self, key: str) -> None:
        """
        Remove `key`. Succeeds silently if it does not exist.
        """


class OrderedSetStore(Protocol):
    """
    Ordered-set side of the backing store.

    Every member of a set carries the same weight, so members compare
    purely by lexicographic (byte) order. Range bounds use the store's
    lexicographic syntax: "[member" inclusive, "(member" exclusive,
    "-" and "+" for the open ends.
    """

    async def insert_member(self, set_name: str, member: str) -> None:
        """
        Add `member` to the set. Re-inserting an existing member leaves
        the set unchanged.
        """

    async def remove_member(self, set_name: str, member: str) -> None:
        """
        Remove `member` from the set. Succeeds silently if it is absent.
        """

    async def lex_range(
        self,
        set_name: str,
        lex_start: str,
        lex_end: str,
        limit: int,
    ) -> list[str]:
        """
        Return at most `limit` members within [lex_start, lex_end],
        in ascending order.
        """

    async def lex_count(self, set_name: str, lex_start: str, lex_end: str) -> int:
        """
        Return the exact number of members within [lex_start, lex_end]
        without transferring them.
        """

    async def cardinality(self, set_name: str) -> int:
        """
        Return the number of members of the set, 0 if it does not exist.
        """


class CommandBatch(Protocol):
    """
    Buffer of commands sent to the store in a single round trip.

    Commands are queued by calling the methods below, which return
    immediately. `execute()` sends them and returns one entry per queued
    command, in order. A command that failed on the store yields the
    exception instance in place of its result; only a failure of the
    round trip itself raises (BackendUnavailable).
    """

    def set(self, key: str, value: bytes) -> None:
        """Queue a scalar write."""

    def delete(self, key: str) -> None:
        """Queue a scalar delete."""

    def insert_member(self, set_name: str, member: str) -> None:
        """Queue an ordered-set insert."""

    def remove_member(self, set_name: str, member: str) -> None:
        """Queue an ordered-set removal."""

    def lex_range(self, set_name: str, lex_start: str, lex_end: str, limit: int) -> None:
        """Queue a bounded lexicographic range query."""

    def lex_count(self, set_name: str, lex_start: str, lex_end: str) -> None:
        """Queue a lexicographic range count."""

    def cardinality(self, set_name: str) -> None:
        """Queue a cardinality query."""

    async def execute(self) -> list[Any]:
        """
        Send every queued command and return their settled results.
        """


class AtomicScripting(Protocol):
    """
    Optional server-side scripting facility. Only used when the capability
    probe reported both scripting and cross-key atomicity.
    """

    async def add_indexed(self, key: str, set_name: str, value: bytes) -> None:
        """
        Store `value` under `key` and insert `key` into `set_name` as one
        indivisible operation.
        """

    async def delete_indexed(self, pairs: list[tuple[str, str]]) -> None:
        """
        For every (key, set_name) pair, delete `key` and remove it from
        `set_name`, all in one indivisible operation.
        """


class IndexStore(ScalarStore, OrderedSetStore, AtomicScripting, Protocol):
    """
    Complete handle on the backing store, as received by the index.

    The index never opens, retries or pools connections: the handle is
    already connected when it is handed over, and per-call timeouts are
    the implementation's concern.
    """

    def pipeline(self) -> CommandBatch:
        """
        Return an empty command batch bound to this store.
        """

    async def capabilities(self) -> StoreCapabilities:
        """
        Probe the store for scripting and cross-key atomicity.
        Called exactly once per index, when it is built.
        """

    async def close(self) -> None:
        """
        Release the underlying connection. The handle must not be used
        afterwards.
        """
