import json
from functools import lru_cache

from pydantic import ValidationError

from zindex.bootstrap.config.settings import ZIndexSettings
from zindex.core.connections.connector import StoreConnector
from zindex.core.errors import ConfigError
from zindex.core.facade import IndexManager
from zindex.core.models.config import IndexConfig
from zindex.infra.redis_store import RedisIndexStore


@lru_cache
def get_settings() -> ZIndexSettings:
    try:
        return ZIndexSettings()
    except FileNotFoundError as ex:
        raise SystemExit(f"Provide a correct configuration file path: {ex}")
    except ValidationError as ex:
        msg = ["Configuration validation failed:"]
        errs = json.loads(ex.json())
        for err in errs:
            msg.append(f"  {'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
        raise SystemExit("\n".join(msg))


@lru_cache
def get_index_config() -> IndexConfig:
    try:
        return get_settings().to_index_config()
    except ConfigError as ex:
        raise SystemExit(f"Configuration validation failed:\n  index: {ex}")


@lru_cache
def get_connector() -> StoreConnector:
    settings = get_settings()

    async def connect() -> RedisIndexStore:
        return RedisIndexStore.from_url(
            settings.store.url,
            cluster=settings.store.cluster,
            socket_timeout=settings.store.socket_timeout,
        )

    return StoreConnector(factory=connect)


async def open_manager() -> IndexManager:
    """
    Build an IndexManager from the loaded configuration. The store
    connection is opened on the first call and shared afterwards.
    """
    return await IndexManager.open(get_connector(), get_index_config())
