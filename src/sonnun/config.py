"""
Configuration for the provenance tools.

Supports:
- Environment variable configuration
- YAML file configuration
- Runtime overrides (environment wins over file)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from sonnun.provenance.manifest import DEFAULT_EXCERPT_LIMIT
from sonnun.provenance.verifier import DEFAULT_MAX_DOCUMENT_SIZE

DEFAULT_DATABASE = "sonnun.db"

ENV_VARS = {
    "database_path": "SONNUN_DB",
    "excerpt_limit": "SONNUN_EXCERPT_LIMIT",
    "log_level": "SONNUN_LOG_LEVEL",
    "max_document_size": "SONNUN_MAX_DOCUMENT_SIZE",
    "signing_key_b64": "SONNUN_SIGNING_PRIVATE_KEY",
    "public_key_b64": "SONNUN_SIGNING_PUBLIC_KEY",
}
_INT_FIELDS = {"excerpt_limit", "max_document_size"}


class ConfigError(ValueError):
    """Invalid configuration value."""


@dataclass
class SonnunConfig:
    """
    Runtime configuration.

    Defaults:
    - database_path: sonnun.db (":memory:" for a throwaway ledger)
    - excerpt_limit: 50 recent events per manifest
    - log_level: WARNING
    """

    database_path: str = DEFAULT_DATABASE
    excerpt_limit: int = DEFAULT_EXCERPT_LIMIT
    log_level: str = "WARNING"
    max_document_size: int = DEFAULT_MAX_DOCUMENT_SIZE

    # Key material (base64); the signing key is never serialized
    signing_key_b64: str | None = field(default=None, repr=False)
    public_key_b64: str | None = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.database_path = str(self.database_path)
        if self.excerpt_limit < 0:
            raise ConfigError(f"excerpt_limit must be >= 0, got {self.excerpt_limit}")
        if self.max_document_size < 1:
            raise ConfigError(f"max_document_size must be >= 1, got {self.max_document_size}")
        self.log_level = str(self.log_level).upper()
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigError(f"Unknown log level: {self.log_level}")

    @classmethod
    def from_env(cls) -> SonnunConfig:
        """
        Create configuration from environment variables.

        Environment variables:
            SONNUN_DB: Ledger database path
            SONNUN_EXCERPT_LIMIT: Events included in a manifest
            SONNUN_LOG_LEVEL: Logging level name
            SONNUN_MAX_DOCUMENT_SIZE: Largest document the verifier reads (bytes)
            SONNUN_SIGNING_PRIVATE_KEY: Base64 signing key
            SONNUN_SIGNING_PUBLIC_KEY: Base64 public key
        """
        return cls.from_dict(_env_overrides())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SonnunConfig:
        """Create configuration from dictionary (e.g., YAML)."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        values: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key in _INT_FIELDS:
                try:
                    value = int(value)
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"{key} must be an integer, got {value!r}") from e
            values[key] = value
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> SonnunConfig:
        """Load configuration from a YAML file."""
        return cls.from_dict(_read_yaml(path))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary (without the signing key)."""
        return {
            "database_path": self.database_path,
            "excerpt_limit": self.excerpt_limit,
            "log_level": self.log_level,
            "max_document_size": self.max_document_size,
            "public_key_b64": self.public_key_b64,
        }


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {path}")
    return data


def _env_overrides() -> dict[str, str]:
    return {
        name: os.environ[var]
        for name, var in ENV_VARS.items()
        if os.environ.get(var)
    }


def load_config(path: Path | None = None) -> SonnunConfig:
    """Load YAML configuration (if given), then apply environment overrides."""
    data: dict[str, Any] = {}
    if path is not None:
        data.update(_read_yaml(path))
    data.update(_env_overrides())
    return SonnunConfig.from_dict(data)


def configure_logging(config: SonnunConfig) -> None:
    """Configure root logging from the configured level."""
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
