"""Read ``asa-provisioner.yaml`` into a validated ``Config``."""

from __future__ import annotations

import logging
import os
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML

from asa_provisioner.config.schema import Config

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from asa_provisioner.resources.base import Resource

logger = logging.getLogger(__name__)

_ENV_PREFIX = "ARM_"
# Provider fields that may come from the environment; anything else is YAML only.
_ENV_FIELDS = ("subscription_id", "access_token", "endpoint", "api_version")


class ConfigError(Exception):
    """Raised for configuration loading / validation errors."""


def _env_sources(config_dir: Path) -> list[Mapping[str, str | None]]:
    """Process environment first, then the ``.env`` file beside the config."""
    sources: list[Mapping[str, str | None]] = [os.environ]
    env_file = config_dir / ".env"
    if env_file.is_file():
        sources.append(dotenv_values(env_file, encoding="utf-8-sig"))
    return sources


def _resolve_provider(raw_provider: dict[str, Any], config_dir: Path) -> dict[str, Any]:
    """Fill unset provider fields from the environment.

    A YAML value wins over ``ARM_*`` variables, which win over ``.env``.
    YAML ``null`` counts as unset.
    """
    resolved = {k: v for k, v in raw_provider.items() if v is not None or k not in _ENV_FIELDS}
    sources = _env_sources(config_dir)
    for field in _ENV_FIELDS:
        if resolved.get(field) is not None:
            continue
        var = _ENV_PREFIX + field.upper()
        value = next((s[var] for s in sources if s.get(var) is not None), None)
        if value is not None:
            resolved[field] = value
    return resolved


def _validate_unique_addresses(resources: Sequence[Resource]) -> list[str]:
    counts = Counter(r.address for r in resources)
    return [f"Duplicate resource address '{addr}'" for addr, n in counts.items() if n > 1]


def _read_mapping(path: Path) -> dict[str, Any]:
    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return raw


def load_config(path: Path | str) -> Config:
    """Load and validate a configuration file.

    Raises:
        ConfigError: the file is unreadable, not a mapping, fails validation,
            or declares two inputs with the same address.
    """
    path = Path(path)
    raw = _read_mapping(path)
    raw["provider"] = _resolve_provider(raw.get("provider") or {}, path.parent)

    try:
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
    config.config_dir = path.parent

    duplicates = _validate_unique_addresses(config.resources)
    if duplicates:
        raise ConfigError("\n".join(duplicates))

    logger.info("Loaded config from %s (%d resources)", path, len(config.resources))
    return config
