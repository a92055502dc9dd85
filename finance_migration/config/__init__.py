"""
finance_migration.config -- engine configuration entry point.

``get_engine_config()`` is the only way runtime code obtains configuration.
It loads ``defaults/engine.yaml`` (or a caller-supplied file), parses it into
a frozen ``EngineConfig`` and caches the result per path.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from finance_migration.config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_engine_config,
)
from finance_migration.config.schema import (
    CollectionSignature,
    EngineConfig,
    ExportDefaults,
    VendorHeaderMap,
)
from finance_migration.logging_config import get_logger

__all__ = [
    "CollectionSignature",
    "EngineConfig",
    "ExportDefaults",
    "VendorHeaderMap",
    "DEFAULT_CONFIG_PATH",
    "get_engine_config",
]

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "engine.yaml"


def get_engine_config(path: Path | str | None = None) -> EngineConfig:
    """Return the parsed engine configuration (cached per resolved path)."""
    resolved = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    return _load_cached(resolved.resolve())


@lru_cache(maxsize=8)
def _load_cached(path: Path) -> EngineConfig:
    raw = load_yaml_file(path)
    config = parse_engine_config(raw)
    logger.info(
        "engine_config_loaded",
        extra={
            "config_path": str(path),
            "checksum": compute_checksum(raw),
            "vendor_maps": len(config.vendor_maps),
            "collection_signatures": len(config.collection_signatures),
        },
    )
    return config
