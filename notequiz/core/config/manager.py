"""
ConfigManager: dot-notation access to quiz tunables.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable values such as question
  counts, gateway timeouts and catalog option listings.
- Back those values with YAML files from the `config/` directory.
- Allow runtime overrides (tests, operator hot changes) layered over YAML.

Responsibilities
----------------
- Load and deep-merge every `*.yaml` / `*.yml` file under the config dir.
- Serve reads from an in-memory cache, falling back to defaults.
- Apply overrides without mutating the loaded defaults.

Key Design Decisions
--------------------
- YAML is the single source for defaults; overrides win over YAML.
- Classmethod singleton, matching `Config`; services receive the class (or
  any object exposing `get`) through their constructor.
- Reads never raise; missing keys resolve to the caller's default.
"""

from __future__ import annotations

import asyncio
import copy
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import yaml

from notequiz.core.config.config import Config
from notequiz.core.logging.logger import get_logger

logger = get_logger(__name__)

_MISSING = object()


class ConfigManager:
    """
    YAML-backed tunable configuration with runtime overrides.

    Examples
    --------
    >>> await ConfigManager.initialize()
    >>> ConfigManager.get("quiz.questions_per_session", 10)
    10
    >>> ConfigManager.set_override("quiz.answer_choices", 3)
    """

    _defaults: Dict[str, Any] = {}
    _overrides: Dict[str, Any] = {}
    _cache: Dict[str, Any] = {}
    _initialized: bool = False
    _config_dir: Optional[Path] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return merged

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(
            config_dir.rglob("*.yml")
        )
        for yaml_file in yaml_files:
            with yaml_file.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)

            if isinstance(data, dict):
                cls._deep_merge_dict(merged, data)
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        logger.info(
            "YAML configs loaded",
            extra={"config_dir": str(config_dir), "file_count": len(yaml_files)},
        )
        return merged

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def load(cls, config_dir: Optional[Path] = None) -> None:
        """Synchronously (re)load YAML defaults; overrides are preserved."""
        directory = Path(config_dir) if config_dir is not None else Config.CONFIG_DIR
        cls._config_dir = directory
        cls._defaults = cls._load_yaml_configs(directory)
        cls._rebuild_cache()
        cls._initialized = True

    @classmethod
    async def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """Initialize from YAML (idempotent)."""
        async with cls._init_lock:
            if cls._initialized:
                return
            cls.load(config_dir)

    @classmethod
    def reset(cls) -> None:
        """Drop overrides and cached state. Primarily for tests."""
        cls._overrides = {}
        cls._defaults = {}
        cls._cache = {}
        cls._initialized = False

    @classmethod
    def _rebuild_cache(cls) -> None:
        cache = copy.deepcopy(cls._defaults)
        for key, value in cls._overrides.items():
            cls._assign(cache, key, value)
        cls._cache = cache

    @staticmethod
    def _assign(target: Dict[str, Any], key: str, value: Any) -> None:
        parts = key.split(".")
        node = target
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    # =========================================================================
    # READS & WRITES
    # =========================================================================

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Lazily loads YAML defaults when accessed before `initialize()`.
        """
        if not cls._initialized:
            logger.debug("ConfigManager accessed before initialization; loading YAML")
            cls.load(cls._config_dir)

        value: Any = cls._cache
        for part in key.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(part, _MISSING)
            if value is _MISSING:
                return default

        return default if value is None else value

    @classmethod
    def set_override(cls, key: str, value: Any) -> None:
        """Override a single dot-notation key at runtime."""
        if not cls._initialized:
            cls.load(cls._config_dir)
        cls._overrides[key] = value
        cls._rebuild_cache()
        logger.info(
            "Configuration override applied",
            extra={"config_key": key, "config_value": repr(value)},
        )

    @classmethod
    def clear_override(cls, key: str) -> None:
        if cls._overrides.pop(key, _MISSING) is not _MISSING:
            cls._rebuild_cache()

    @classmethod
    def get_all_keys(cls) -> List[str]:
        """Top-level keys currently available."""
        return list(cls._cache.keys())
