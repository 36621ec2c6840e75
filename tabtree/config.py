"""Runtime configuration.

Plain values with the defaults the extension shipped with. load_config()
reads overrides from TABTREE_* environment variables, optionally seeded
from a .env file.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

ENV_PREFIX = "TABTREE_"


class PersistSettings(BaseModel):
    debounce_ms: int = Field(default=400, ge=0)
    snapshot_min_interval_ms: int = Field(default=2000, ge=0)
    retry_base_ms: int = Field(default=500, ge=0)
    retry_max_ms: int = Field(default=4000, ge=0)

    @model_validator(mode="after")
    def _retry_cap_not_below_base(self) -> "PersistSettings":
        if self.retry_max_ms < self.retry_base_ms:
            raise ValueError("retry_max_ms must be >= retry_base_ms")
        return self


class SnapshotLimits(BaseModel):
    """Caps that keep the compact snapshot inside a sync-storage quota."""

    max_containers: int = Field(default=3, ge=1)
    max_nodes_per_container: int = Field(default=80, ge=1)
    max_url_length: int = Field(default=220, ge=1)


class InferenceWeights(BaseModel):
    url_weight: int = 2
    title_weight: int = 1


class TabTreeConfig(BaseModel):
    db_path: str = "tabtree.db"
    persist: PersistSettings = Field(default_factory=PersistSettings)
    snapshot_limits: SnapshotLimits = Field(default_factory=SnapshotLimits)
    inference: InferenceWeights = Field(default_factory=InferenceWeights)


# env var suffix -> (section, field)
_ENV_FIELDS: dict[str, tuple[str | None, str]] = {
    "DB_PATH": (None, "db_path"),
    "DEBOUNCE_MS": ("persist", "debounce_ms"),
    "SNAPSHOT_MIN_INTERVAL_MS": ("persist", "snapshot_min_interval_ms"),
    "RETRY_BASE_MS": ("persist", "retry_base_ms"),
    "RETRY_MAX_MS": ("persist", "retry_max_ms"),
    "SYNC_MAX_CONTAINERS": ("snapshot_limits", "max_containers"),
    "SYNC_MAX_NODES": ("snapshot_limits", "max_nodes_per_container"),
    "SYNC_MAX_URL_LENGTH": ("snapshot_limits", "max_url_length"),
    "URL_WEIGHT": ("inference", "url_weight"),
    "TITLE_WEIGHT": ("inference", "title_weight"),
}


def load_config(env_file: str | Path | None = None) -> TabTreeConfig:
    """Build a TabTreeConfig from the environment.

    If env_file is given, it is loaded first (without overriding variables
    that are already set). Raises ConfigError on values that don't parse or
    fail validation.
    """
    if env_file is not None:
        load_dotenv(env_file)

    raw: dict[str, dict] = {"persist": {}, "snapshot_limits": {}, "inference": {}}
    top: dict[str, str] = {}
    for suffix, (section, field) in _ENV_FIELDS.items():
        value = os.environ.get(f"{ENV_PREFIX}{suffix}")
        if value is None or value == "":
            continue
        if section is None:
            top[field] = value
        else:
            raw[section][field] = value

    try:
        return TabTreeConfig.model_validate({**top, **raw})
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


class ConfigError(Exception):
    """Invalid TABTREE_* configuration."""
