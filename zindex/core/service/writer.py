import logging
from collections.abc import Iterable

from zindex.core.errors import ValidationError
from zindex.core.helpers.utils import chunked, normalize_keys
from zindex.core.space.buckets import BucketTable
from zindex.core.write.strategy import WriteStrategy


class AtomicWriteBackend:
    """
    Dual write and dual delete of records and their index membership.

    Every record lives twice on the store: its value under its own key,
    and its key as a member of the partition selected by its routing code.
    This service keeps both in step through the write strategy selected
    for the store: one indivisible scripted operation when the store can
    run it, independent best-effort requests otherwise.

    Re-adding a key overwrites its value and re-asserts its membership,
    which is a no-op on the ordered set. Batch deletes are split into
    chunks of `delete_batch_size` keys; chunks are applied in order and a
    failing chunk stops the batch without rolling back the chunks already
    applied.
    """
    def __init__(
        self,
        buckets: BucketTable,
        strategy: WriteStrategy,
        delete_batch_size: int = 1000,
    ) -> None:
        self._buckets = buckets
        self._strategy = strategy
        self._delete_batch_size = delete_batch_size
        self._logger = logging.getLogger("core.service.writer")

    @property
    def atomic(self) -> bool:
        return self._strategy.atomic

    async def add(self, key: str, value: bytes | str) -> None:
        """
        Store `value` under `key` and register `key` in its partition.
        String values are stored UTF-8 encoded.
        """
        self._check_key(key)
        if isinstance(value, str):
            value = value.encode("utf-8")
        elif not isinstance(value, (bytes, bytearray, memoryview)):
            raise ValidationError(
                f"value must be bytes or str, got {type(value).__name__}"
            )

        set_name = self._buckets.partition_for(key)
        await self._strategy.add(key, set_name, bytes(value))

    async def delete(self, keys: str | Iterable[str]) -> int:
        """
        Remove one key or a sequence of keys, with their index entries.
        Returns the number of keys processed.
        """
        batch = normalize_keys(keys)
        if not batch:
            return 0

        for key in batch:
            self._check_key(key)

        chunks = chunked(batch, self._delete_batch_size)
        for i, chunk in enumerate(chunks):
            pairs = [(key, self._buckets.partition_for(key)) for key in chunk]
            await self._strategy.delete(pairs)
            self._logger.debug(
                f"Deleted chunk {i + 1}/{len(chunks)} ({len(chunk)} keys)"
            )

        return len(batch)

    @staticmethod
    def _check_key(key: str) -> None:
        if not isinstance(key, str) or not key:
            raise ValidationError(f"key must be a non-empty string, got {key!r}")
