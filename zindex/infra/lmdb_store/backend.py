import threading
from collections.abc import Iterator
from typing import Any

import lmdb

from zindex.core.errors import ValidationError
from zindex.core.query.range import LexBound

VALUES_DB = b"zindex:values"


class LMDBBackend:
    """
    Synchronous ordered-set and scalar store on a single LMDB environment.

    Record values live in one named database. Every ordered set is a named
    database of its own whose keys are the UTF-8 encoded members (with
    empty values). LMDB keeps keys in byte order, which makes lexicographic
    range queries a plain cursor walk.

    Each public method runs in its own short transaction. `add_indexed`
    and `delete_indexed` touch the value database and the ordered sets in
    a single write transaction, so they are atomic.
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
    ) -> None:
        self._env = lmdb.open(
            path,
            map_size=map_size,
            max_dbs=max_dbs,
            lock=lock,
            writemap=writemap,
            sync=sync,
            readahead=readahead,
        )
        self._max_key_size = self._env.max_key_size()
        self._dbis: dict[bytes, Any] = {}
        self._dbis_lock = threading.Lock()

    def set(self, key: str, value: bytes) -> None:
        dbi = self._get_dbi(VALUES_DB)
        with self._env.begin(db=dbi, write=True) as txn:
            txn.put(self._encode(key), value)

    def get(self, key: str) -> bytes | None:
        dbi = self._get_dbi(VALUES_DB)
        with self._env.begin(db=dbi, write=False) as txn:
            return txn.get(self._encode(key))

    def mget(self, keys: list[str]) -> list[bytes | None]:
        dbi = self._get_dbi(VALUES_DB)
        with self._env.begin(db=dbi, write=False) as txn:
            return [txn.get(self._encode(key)) for key in keys]

    def delete(self, key: str) -> None:
        dbi = self._get_dbi(VALUES_DB)
        with self._env.begin(db=dbi, write=True) as txn:
            txn.delete(self._encode(key))

    def insert_member(self, set_name: str, member: str) -> None:
        dbi = self._get_dbi(set_name.encode("utf-8"))
        with self._env.begin(db=dbi, write=True) as txn:
            txn.put(self._encode(member), b"")

    def remove_member(self, set_name: str, member: str) -> None:
        dbi = self._get_dbi(set_name.encode("utf-8"))
        with self._env.begin(db=dbi, write=True) as txn:
            txn.delete(self._encode(member))

    def lex_range(
        self,
        set_name: str,
        lex_start: str,
        lex_end: str,
        limit: int,
    ) -> list[str]:
        if limit <= 0:
            return []

        dbi = self._get_dbi(set_name.encode("utf-8"))
        members: list[str] = []
        with self._env.begin(write=False) as txn:
            with txn.cursor(db=dbi) as cursor:
                for member in self._walk(cursor, lex_start, lex_end):
                    members.append(member.decode("utf-8"))
                    if len(members) >= limit:
                        break
        return members

    def lex_count(self, set_name: str, lex_start: str, lex_end: str) -> int:
        dbi = self._get_dbi(set_name.encode("utf-8"))
        with self._env.begin(write=False) as txn:
            with txn.cursor(db=dbi) as cursor:
                return sum(1 for _ in self._walk(cursor, lex_start, lex_end))

    def cardinality(self, set_name: str) -> int:
        dbi = self._get_dbi(set_name.encode("utf-8"))
        with self._env.begin(write=False) as txn:
            return txn.stat(dbi)["entries"]

    def add_indexed(self, key: str, set_name: str, value: bytes) -> None:
        values = self._get_dbi(VALUES_DB)
        index = self._get_dbi(set_name.encode("utf-8"))
        raw_key = self._encode(key)

        with self._env.begin(write=True) as txn:
            txn.put(raw_key, value, db=values)
            txn.put(raw_key, b"", db=index)

    def delete_indexed(self, pairs: list[tuple[str, str]]) -> None:
        values = self._get_dbi(VALUES_DB)
        dbis = {
            set_name: self._get_dbi(set_name.encode("utf-8"))
            for _, set_name in pairs
        }

        with self._env.begin(write=True) as txn:
            for key, set_name in pairs:
                raw_key = self._encode(key)
                txn.delete(raw_key, db=values)
                txn.delete(raw_key, db=dbis[set_name])

    def run_batch(self, commands: list[tuple[str, tuple[Any, ...]]]) -> list[Any]:
        """
        Run queued commands in order. A failing command yields its
        exception in place of its result and does not stop the batch.
        """
        results: list[Any] = []
        for name, args in commands:
            try:
                results.append(getattr(self, name)(*args))
            except lmdb.Error as ex:
                results.append(ex)
        return results

    def close(self) -> None:
        self._dbis.clear()
        self._env.close()

    def _encode(self, key: str) -> bytes:
        raw = key.encode("utf-8")
        if len(raw) > self._max_key_size:
            raise ValidationError(
                f"key is {len(raw)} bytes long, LMDB accepts at most "
                f"{self._max_key_size}: {key[:32]!r}..."
            )
        return raw

    def _get_dbi(self, name: bytes) -> Any:
        with self._dbis_lock:
            dbi = self._dbis.get(name)
            if dbi is None:
                dbi = self._env.open_db(name)
                self._dbis[name] = dbi
            return dbi

    def _walk(self, cursor: lmdb.Cursor, lex_start: str, lex_end: str) -> Iterator[bytes]:
        start = LexBound.parse(lex_start)
        end = LexBound.parse(lex_end)
        if lex_start == "+" or lex_end == "-":
            return

        if start.value is None:
            positioned = cursor.first()
        else:
            low = self._encode(start.value)
            positioned = cursor.set_range(low)
            if positioned and not start.inclusive and cursor.key() == low:
                positioned = cursor.next()

        high = self._encode(end.value) if end.value is not None else None

        while positioned:
            key = cursor.key()
            if high is not None:
                if key > high or (key == high and not end.inclusive):
                    return
            yield key
            positioned = cursor.next()
