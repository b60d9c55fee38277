# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/config/manager.py

from __future__ import annotations

import os
from pathlib import Path
from typing import Final, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from castore.system.exceptions import InvalidConfiguration


# ---- Constants ----

USER_CFG: Final = "castore.yml"
DEFAULT_STORAGE: Final = "./storage"
DEFAULT_STORAGE_TYPE: Final = "hyperdrive"
DEFAULT_POOL_SIZE: Final = 8


def _get_config_search_paths() -> tuple[Path, ...]:
    """Get config file search paths (ordered by priority: lowest to highest).

    Evaluated at call time so environment overrides set by tests apply.
    """
    return (
        Path("/etc/castore") / USER_CFG,
        Path.home() / ".config" / "castore" / USER_CFG,
        Path(os.getenv("XDG_CONFIG_HOME", "")) / "castore" / USER_CFG,
        Path(os.getenv("CASTORE_CONFIG_HOME", "")) / USER_CFG,
    )


def _load_yaml(path: Path) -> dict:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise InvalidConfiguration(f"Failed to read config {path}: {e}") from e
    if not isinstance(data, dict):
        raise InvalidConfiguration(f"Config {path} must contain a mapping, got {type(data).__name__}")
    return data


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---- Models ----

class HyperdriveConfig(BaseModel):
    """Replicas and durability settings for the hyperdrive backend."""
    replicas: list[str] = Field(default_factory=list, description="file:// paths or ssh://user@host/path URIs")
    write_quorum: Optional[int] = Field(default=None, description="Replicas that must acknowledge a write; default majority")
    retry_attempts: int = Field(default=3, ge=1, le=10)
    ssh_key: Optional[str] = None

    @field_validator("write_quorum")
    @classmethod
    def quorum_positive(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError("write_quorum must be at least 1")
        return value


class StoreConfig(BaseModel):
    """Repository configuration supplied by the hosting process."""
    storage: str = DEFAULT_STORAGE
    storage_type: str = DEFAULT_STORAGE_TYPE
    pool_size: int = Field(default=DEFAULT_POOL_SIZE, gt=0)
    pool_timeout: Optional[float] = Field(default=None, gt=0)
    hyperdrive: HyperdriveConfig = Field(default_factory=HyperdriveConfig)
    local_log: Optional[Path] = None

    @classmethod
    def from_data(cls, data: dict, source: str = "config") -> "StoreConfig":
        # accept the CLI spelling storage-type as well
        if "storage-type" in data and "storage_type" not in data:
            data = dict(data)
            data["storage_type"] = data.pop("storage-type")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidConfiguration(f"Invalid configuration in {source}: {e}") from e

    @classmethod
    def load(cls, config_path: Optional[Path] = None, **overrides) -> "StoreConfig":
        """Load merged config from the standard locations plus an explicit file.

        Missing files are skipped; defaults apply when none is found.
        Keyword overrides whose value is None are ignored.
        """
        merged: dict = {}
        found = []
        for candidate in _get_config_search_paths():
            if candidate == Path("") / USER_CFG or candidate == Path("castore") / USER_CFG:
                continue  # unset environment variable
            if candidate.is_file():
                merged = _merge(merged, _load_yaml(candidate))
                found.append(str(candidate))
                logger.debug(f"Loaded config from {candidate}")

        if config_path is not None:
            config_path = Path(config_path)
            if not config_path.is_file():
                raise InvalidConfiguration(f"Config file not found: {config_path}")
            merged = _merge(merged, _load_yaml(config_path))
            found.append(str(config_path))

        if found:
            logger.debug(f"Merged config from: {', '.join(found)}")
        else:
            logger.debug("No castore.yml found, using defaults")

        merged.update({key: value for key, value in overrides.items() if value is not None})
        return cls.from_data(merged, ", ".join(found) or "defaults")

    def save(self, config_path: Path) -> None:
        data = self.model_dump(mode="json", exclude_none=True)
        with config_path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


# done.
