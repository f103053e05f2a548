"""Python API: load a config file, then plan, apply, refresh or import."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import SecretStr

from asa_provisioner.config.loader import ConfigError, load_config
from asa_provisioner.config.registry import default_registry
from asa_provisioner.config.schema import Config, ProviderConfig
from asa_provisioner.core.provider import AzureProvider, TokenAuth
from asa_provisioner.core.state import State
from asa_provisioner.engine.engine import ProgressCallback, ProvisioningEngine
from asa_provisioner.engine.lock import StateLock
from asa_provisioner.engine.types import Action, ResourceChange

if TYPE_CHECKING:
    from pathlib import Path

    from asa_provisioner.core.state import ResourceInstance
    from asa_provisioner.engine.types import ApplyResult, Plan

__all__ = [
    "Config",
    "ConfigError",
    "ProviderConfig",
    "State",
    "apply",
    "drift",
    "import_resource",
    "load",
    "load_config",
    "plan",
    "plan_and_apply",
    "refresh",
    "save_state",
]


def load(path: Path | str) -> Config:
    return load_config(path)


def _provider(settings: ProviderConfig) -> AzureProvider:
    if not settings.access_token:
        raise ConfigError("provider.access_token is required (set ARM_ACCESS_TOKEN env var)")
    return AzureProvider(
        subscription_id=settings.subscription_id,
        endpoint=settings.endpoint,
        api_version=settings.api_version,
        auth=TokenAuth(access_token=SecretStr(settings.access_token)),
        timeouts=settings.timeouts,
    )


def _engine_from_config(config: Config) -> ProvisioningEngine:
    return ProvisioningEngine(
        provider=_provider(config.provider),
        state_path=config.state_path,
        registry=default_registry(),
    )


def plan(config: Config, *, destroy: bool = False, refresh: bool = True) -> Plan:
    """Compute the changes that would make Azure match ``config``."""
    return _engine_from_config(config).plan(config.resources, destroy=destroy, refresh=refresh)


def apply(
    plan_obj: Plan, config: Config, *, progress: ProgressCallback | None = None
) -> ApplyResult:
    """Apply a plan computed by :func:`plan` (or loaded from a plan file)."""
    return _engine_from_config(config).apply(plan_obj, progress=progress)


def plan_and_apply(config: Config, *, destroy: bool = False, refresh: bool = True) -> ApplyResult:
    return apply(plan(config, destroy=destroy, refresh=refresh), config)


def refresh(config: Config) -> tuple[list[ResourceChange], State]:
    """Read every tracked input from Azure without saving.

    Returns the drift and the refreshed state; pass the state to
    :func:`save_state` to keep it.
    """
    before, after = _engine_from_config(config).refresh()
    return _drift_between(before, after), after


def save_state(config: Config, state: State) -> None:
    with StateLock(config.state_path):
        state.commit(config.state_path)


def drift(config: Config) -> list[ResourceChange]:
    """Differences between the state file and Azure, sorted by address."""
    changes, _ = refresh(config)
    return changes


def import_resource(config: Config, resource_id: str, *, resource_type: str) -> ResourceInstance:
    """Start tracking an input that already exists in Azure."""
    return _engine_from_config(config).import_resource(resource_type, resource_id)


def _attr_diff(old: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
    return {
        k: {"from": old.get(k), "to": new.get(k)}
        for k in sorted(old.keys() | new.keys())
        if old.get(k) != new.get(k)
    }


def _drift_between(before: State, after: State) -> list[ResourceChange]:
    """UPDATE for inputs that changed remotely, DELETE for inputs that are gone."""
    changes: list[ResourceChange] = []
    for addr, prior in sorted(before.resources.items()):
        current = after.resources.get(addr)
        if current is None:
            changes.append(
                ResourceChange(
                    address=addr,
                    resource_type=prior.resource_type,
                    action=Action.DELETE,
                    prior=dict(prior.attributes),
                )
            )
            continue
        diff = _attr_diff(prior.attributes, current.attributes)
        if diff:
            changes.append(
                ResourceChange(
                    address=addr,
                    resource_type=current.resource_type,
                    action=Action.UPDATE,
                    prior=dict(prior.attributes),
                    planned=dict(current.attributes),
                    diff=diff,
                )
            )
    return changes
