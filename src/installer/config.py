"""Installer configuration from defaults, environment and YAML files."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import yaml

from constants import Constants
from errors import ConfigError

from .policy import PolicyConfig

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class InstallerConfig:
    """Configuration for the package manager."""

    registry_url: str = Constants.REGISTRY_URL_NPM
    metadata_ttl: float = Constants.METADATA_TTL_SEC
    timeout: int = Constants.REQUEST_TIMEOUT
    max_cache_entries: int = Constants.CACHE_MAX_ENTRIES
    detect_cycles: bool = False
    policy: PolicyConfig = field(default_factory=PolicyConfig)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "InstallerConfig":
        """Create config from a mapping (the ``installer:`` section of a file).

        Raises:
            ConfigError: On values of the wrong type.
        """
        config = cls()
        if not data:
            return config
        try:
            if data.get("registry_url"):
                config.registry_url = str(data["registry_url"]).rstrip("/")
            if data.get("metadata_ttl") is not None:
                config.metadata_ttl = float(data["metadata_ttl"])
            if data.get("timeout") is not None:
                config.timeout = int(data["timeout"])
            if data.get("max_cache_entries") is not None:
                config.max_cache_entries = int(data["max_cache_entries"])
            if data.get("detect_cycles") is not None:
                config.detect_cycles = _as_bool(data["detect_cycles"])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid installer setting: {exc}") from exc
        return config

    @classmethod
    def from_file(cls, path: str) -> "InstallerConfig":
        """Load a YAML file with optional ``installer:`` and ``policy:`` sections.

        Raises:
            ConfigError: If the file is missing or not valid YAML.
        """
        if not os.path.isfile(path):
            raise ConfigError(f"Config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        config = cls.from_dict(data.get("installer") or {})
        if "policy" in data:
            config.policy = PolicyConfig.from_dict(data["policy"])
        logger.info("Loaded installer config from: %s", path)
        return config

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "InstallerConfig":
        """Create config from ``VNPM_*`` environment variables.

        ``VNPM_POLICY_FILE`` names a YAML file loaded first; the other
        variables override it.
        """
        env = os.environ if environ is None else environ
        policy_file = env.get(Constants.ENV_POLICY_FILE)
        config = cls.from_file(policy_file) if policy_file else cls()

        try:
            if env.get(Constants.ENV_REGISTRY_URL):
                config.registry_url = env[Constants.ENV_REGISTRY_URL].rstrip("/")
            if env.get(Constants.ENV_METADATA_TTL):
                config.metadata_ttl = float(env[Constants.ENV_METADATA_TTL])
            if env.get(Constants.ENV_TIMEOUT):
                config.timeout = int(env[Constants.ENV_TIMEOUT])
            if env.get(Constants.ENV_DETECT_CYCLES):
                config.detect_cycles = _as_bool(env[Constants.ENV_DETECT_CYCLES])
        except ValueError as exc:
            raise ConfigError(f"invalid environment setting: {exc}") from exc
        return config


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES
