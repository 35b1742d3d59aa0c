from typing import Annotated

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from zindex.bootstrap.config.loader import get_configfile
from zindex.core.models.config import IndexConfig


class IndexSettings(BaseModel):
    prefix: Annotated[
        str,
        Field(
            description=(
                "Namespace of the partition keys on the store.\n"
                "Partitions are named <prefix><routing code>, e.g. 'idx:3f'."
            ),
            default="idx:"
        )
    ]

    hash_chars: Annotated[
        int,
        Field(
            description=(
                "Width, in hex digits, of the routing code taken from the key digest.\n"
                "1 gives 16 partitions, 2 gives 256. Any other value is rejected.\n"
                "Changing it after data has been written requires a re-bucketing migration."
            ),
            default=2
        )
    ]

    scan_batch_size: Annotated[
        int,
        Field(
            description="Number of partitions queried per round trip by scans and stats.",
            default=50
        )
    ]

    mget_batch_size: Annotated[
        int,
        Field(
            description="Number of keys per multi-get when a scan resolves values.",
            default=200
        )
    ]

    delete_batch_size: Annotated[
        int,
        Field(
            description="Number of keys per scripted or pipelined call of a batch delete.",
            default=1000
        )
    ]


class StoreSettings(BaseModel):
    url: Annotated[
        str,
        Field(
            description="Redis connection URL, e.g. 'redis://127.0.0.1:6379/0'.",
            default="redis://127.0.0.1:6379/0"
        )
    ]

    cluster: Annotated[
        bool,
        Field(
            description=(
                "Connect with a Redis Cluster client.\n"
                "Records and partitions cannot be colocated on a cluster, so writes\n"
                "fall back to the non-atomic path."
            ),
            default=False
        )
    ]

    socket_timeout: Annotated[
        float | None,
        Field(
            description="Per-command socket timeout in seconds, None to disable.",
            default=5.0
        )
    ]


class ZIndexSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ZINDEX_",
        env_nested_delimiter="__",
        extra="allow"
    )

    index: Annotated[
        IndexSettings,
        Field(
            description="Layout and batching of the bucketed index.",
            default_factory=IndexSettings
        )
    ]

    store: Annotated[
        StoreSettings,
        Field(
            description="Connection to the backing Redis store.",
            default_factory=StoreSettings
        )
    ]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        configfile = get_configfile()
        if configfile is None:
            return init_settings, env_settings

        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=configfile),
        )

    def to_index_config(self) -> IndexConfig:
        return IndexConfig(
            index_prefix=self.index.prefix,
            hash_chars=self.index.hash_chars,
            scan_batch_size=self.index.scan_batch_size,
            mget_batch_size=self.index.mget_batch_size,
            delete_batch_size=self.index.delete_batch_size,
        )
