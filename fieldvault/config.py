"""
Configuration for FieldVault.

Sources, highest priority first:
1. FIELDVAULT_* environment variables (optionally from a .env file)
2. YAML config file
3. Field defaults
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from fieldvault.utils.exceptions import ConfigurationError


class TrashConfig(BaseModel):
    """Soft-delete retention and limits."""

    retention_days: int = Field(default=30, ge=1)
    expiring_soon_days: int = Field(default=7, ge=0)
    max_item_count: int = Field(default=1000, ge=1)
    max_size_bytes: int = Field(default=1024 * 1024 * 1024, ge=1)  # 1 GB
    auto_cleanup: bool = True
    enforce_size_limits: bool = False


class CacheConfig(BaseModel):
    """Virtualized resource cache configuration."""

    max_size_mb: float = Field(default=100.0, gt=0)
    preload_limit: int = Field(default=10, ge=0)


class HistoryConfig(BaseModel):
    """Undo/redo history configuration."""

    max_size: int = Field(default=100, ge=1)


class StorageConfig(BaseModel):
    """Persistent block storage configuration."""

    backend: str = "sqlite"  # sqlite, memory
    db_path: str = "data/fieldvault.db"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str = "zip"
    serialize: bool = True


class Config(BaseModel):
    """Main configuration."""

    trash: TrashConfig = Field(default_factory=TrashConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """
        Build configuration from FIELDVAULT_* environment variables.

        A .env file is read first when given (or when one exists in the working
        directory); variables already present in the process environment win.
        Unset variables fall back to the field defaults. See ENV_VARS for the
        full variable list.

        Raises:
            ConfigurationError: If a variable cannot be converted to its field type
        """
        return cls(**_read_env(env_file))

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        return cls(**_read_yaml(Path(yaml_path)))

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Layer configuration sources: env vars > YAML > defaults.

        Layering is per field, so a YAML section keeps the keys that no
        environment variable overrides. A missing YAML file is skipped.
        """
        layered: dict[str, dict[str, Any]] = {}
        if yaml_path and Path(yaml_path).exists():
            layered = _read_yaml(Path(yaml_path))

        for section, values in _read_env(env_file).items():
            layered[section] = {**layered.get(section, {}), **values}

        return cls(**layered)


# Environment variable -> (section, field)
ENV_VARS: dict[str, tuple[str, str]] = {
    "FIELDVAULT_TRASH_RETENTION_DAYS": ("trash", "retention_days"),
    "FIELDVAULT_TRASH_EXPIRING_SOON_DAYS": ("trash", "expiring_soon_days"),
    "FIELDVAULT_TRASH_MAX_ITEMS": ("trash", "max_item_count"),
    "FIELDVAULT_TRASH_MAX_SIZE_BYTES": ("trash", "max_size_bytes"),
    "FIELDVAULT_TRASH_AUTO_CLEANUP": ("trash", "auto_cleanup"),
    "FIELDVAULT_TRASH_ENFORCE_LIMITS": ("trash", "enforce_size_limits"),
    "FIELDVAULT_CACHE_MAX_SIZE_MB": ("cache", "max_size_mb"),
    "FIELDVAULT_CACHE_PRELOAD_LIMIT": ("cache", "preload_limit"),
    "FIELDVAULT_HISTORY_MAX_SIZE": ("history", "max_size"),
    "FIELDVAULT_STORAGE_BACKEND": ("storage", "backend"),
    "FIELDVAULT_STORAGE_DB_PATH": ("storage", "db_path"),
    "FIELDVAULT_LOG_LEVEL": ("logging", "level"),
    "FIELDVAULT_LOG_TO_FILE": ("logging", "log_to_file"),
    "FIELDVAULT_LOG_DIR": ("logging", "log_dir"),
    "FIELDVAULT_LOG_FILE_ROTATION": ("logging", "file_rotation"),
    "FIELDVAULT_LOG_FILE_RETENTION": ("logging", "file_retention"),
    "FIELDVAULT_LOG_COMPRESSION": ("logging", "compression"),
    "FIELDVAULT_LOG_SERIALIZE": ("logging", "serialize"),
}

_TRUE_VALUES = ("true", "1", "yes", "on")


def _read_env(env_file: str | Path | None = None) -> dict[str, dict[str, Any]]:
    """Collect the FIELDVAULT_* variables that are set, grouped by section."""
    if env_file:
        load_dotenv(env_file)
    elif Path(".env").exists():
        load_dotenv()

    sections: dict[str, dict[str, Any]] = {}
    for key, (section, field) in ENV_VARS.items():
        raw = os.getenv(key)
        if raw is None or raw == "":
            continue
        annotation = Config.model_fields[section].annotation.model_fields[field].annotation
        try:
            if annotation is bool:
                value: Any = raw.lower() in _TRUE_VALUES
            elif annotation in (int, float):
                value = annotation(raw)
            else:
                value = raw
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {key}: {raw!r}", context={"key": key}) from e
        sections.setdefault(section, {})[field] = value
    return sections


def _read_yaml(yaml_path: Path) -> dict[str, Any]:
    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")
    with open(yaml_path) as f:
        return yaml.safe_load(f) or {}
