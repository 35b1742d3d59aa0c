import os
from functools import lru_cache
from pathlib import Path

CONFIG_ENV = "ZINDEXCONFIG"
DEFAULT_CONFIG_FILE = "zindex.yaml"


@lru_cache
def get_configfile() -> Path | None:
    """
    Locate the YAML configuration file.

    Priority: ZINDEXCONFIG environment variable > zindex.yaml in the
    current working directory. Without either, None is returned and the
    settings fall back to environment variables and defaults. A path set
    explicitly through the environment must exist.
    """
    raw = os.getenv(CONFIG_ENV)

    if raw is None:
        file = Path.cwd() / DEFAULT_CONFIG_FILE
        return file if file.is_file() else None

    file = Path(raw)
    if not file.is_file():
        raise SystemExit(
            f"[config] Configuration file not found: '{file}'.\n"
            f"  - Fix or unset the {CONFIG_ENV} environment variable\n"
            f"  - Or place a '{DEFAULT_CONFIG_FILE}' file in the current working directory."
        )

    return file
