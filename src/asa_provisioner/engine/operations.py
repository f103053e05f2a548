"""Apply operations.

Each planned change becomes one operation that knows how to apply itself
through the registered handler and record the outcome in state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from asa_provisioner.core.state import ResourceInstance, State, compute_attributes_hash
from asa_provisioner.engine.errors import ReconcileError
from asa_provisioner.resources.markers import collect_force_new_fields, collect_sensitive_fields

if TYPE_CHECKING:
    from asa_provisioner.engine.handlers import EngineContext
    from asa_provisioner.engine.registry import ResourceTypeRegistry
    from asa_provisioner.engine.types import ResourceChange

logger = logging.getLogger(__name__)


class Operation(Protocol):
    key: str
    change: ResourceChange
    phase: ClassVar[int]

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> None:
        """Execute this operation, mutating *state* in place."""


def _desired_object(change: ResourceChange, reg: Any, *, action: str) -> Any:
    if change.desired is None:
        raise ValueError(f"Missing desired config for {action}: {change.address}")

    desired_obj = reg.model.model_validate(change.desired)
    if desired_obj.address != change.address:
        raise ValueError(
            f"Desired address mismatch for {action}: {change.address} != {desired_obj.address}"
        )
    return desired_obj


def _record_created(state: State, change: ResourceChange, name: str, attrs: dict[str, Any]) -> None:
    now = datetime.now(UTC)
    state.resources[change.address] = ResourceInstance(
        address=change.address,
        resource_type=change.resource_type,
        name=name,
        id=attrs.get("id", ""),
        attributes=attrs,
        attributes_hash=compute_attributes_hash(attrs),
        created_at=now,
        updated_at=now,
    )


def _create(
    ctx: EngineContext, state: State, change: ResourceChange, reg: Any, desired_obj: Any
) -> None:
    try:
        attrs = reg.handler.create(ctx, desired_obj)
    except ReconcileError as exc:
        if exc.created_id:
            # Only identity and write-only values are known; refresh fills in the rest.
            known = collect_force_new_fields(desired_obj) | collect_sensitive_fields(desired_obj)
            partial = {f: getattr(desired_obj, f) for f in sorted(known)}
            partial["id"] = exc.created_id
            logger.warning(
                "%s was created but could not be read back; tracking it as %s",
                change.address,
                exc.created_id,
            )
            _record_created(state, change, desired_obj.name, partial)
        raise
    _record_created(state, change, desired_obj.name, attrs)


@dataclass
class CreateOperation:
    key: str
    change: ResourceChange
    phase: ClassVar[int] = 0

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> None:
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, action="create")
        _create(ctx, state, self.change, reg, desired_obj)


@dataclass
class UpdateOperation:
    key: str
    change: ResourceChange
    phase: ClassVar[int] = 0

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> None:
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, action="update")

        prior_inst = state.resources[self.change.address]
        attrs = reg.handler.update(ctx, desired_obj, prior_inst)

        prior_inst.observe(attrs)


@dataclass
class ReplaceOperation:
    """Destroy the prior instance, then create the desired one."""

    key: str
    change: ResourceChange
    phase: ClassVar[int] = 0

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> None:
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, action="replace")

        prior_inst = state.resources[self.change.address]
        logger.info(
            "Replacing %s (forced by: %s)", self.key, ", ".join(self.change.replace_fields)
        )
        reg.handler.delete(ctx, prior_inst)
        del state.resources[self.change.address]
        _create(ctx, state, self.change, reg, desired_obj)


@dataclass
class DeleteOperation:
    key: str
    change: ResourceChange
    phase: ClassVar[int] = 1

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> None:
        reg = registry.get(self.change.resource_type)

        prior_inst = state.resources[self.change.address]
        reg.handler.delete(ctx, prior_inst)
        del state.resources[self.change.address]
