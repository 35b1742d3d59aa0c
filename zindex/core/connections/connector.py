import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum

from zindex.core.errors import BackendUnavailable
from zindex.core.ports.store import IndexStore


class ConnectorState(StrEnum):
    """
    Lifecycle of a lazily opened store handle.

        unconnected -> connecting -> ready -> closed

    A failed connection attempt goes back to unconnected, so the next
    acquire() tries again. closed is terminal.
    """
    unconnected = "unconnected"
    connecting = "connecting"
    ready = "ready"
    closed = "closed"


class StoreConnector:
    """
    Opens a store handle on first use and hands out the same handle to
    every caller afterwards.

    The factory is awaited at most once per successful connection: callers
    racing on the first acquire() share the same attempt. The connector
    never reconnects a ready handle; reconnecting a live connection is the
    store client's concern.
    """
    def __init__(self, factory: Callable[[], Awaitable[IndexStore]]) -> None:
        self._factory = factory
        self._store: IndexStore | None = None
        self._state = ConnectorState.unconnected
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger("core.connections.connector")

    @property
    def state(self) -> ConnectorState:
        return self._state

    async def acquire(self) -> IndexStore:
        if self._state == ConnectorState.ready and self._store is not None:
            return self._store

        async with self._lock:
            if self._state == ConnectorState.closed:
                raise BackendUnavailable("Store connector is closed")

            if self._state == ConnectorState.ready and self._store is not None:
                return self._store

            self._state = ConnectorState.connecting
            self._logger.debug("Opening store connection")
            try:
                store = await self._factory()
            except BaseException:
                self._state = ConnectorState.unconnected
                raise

            self._store = store
            self._state = ConnectorState.ready
            self._logger.info("Store connection ready")
            return store

    async def close(self) -> None:
        async with self._lock:
            if self._state == ConnectorState.closed:
                return

            store, self._store = self._store, None
            self._state = ConnectorState.closed

        if store is not None:
            self._logger.info("Closing store connection")
            await store.close()
