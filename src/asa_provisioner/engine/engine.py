"""Plan/apply engine."""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from asa_provisioner import __version__
from asa_provisioner.core.state import State, compute_state_digest
from asa_provisioner.engine.errors import (
    ApplyError,
    DuplicateAddressError,
    ResourceImportError,
    StalePlanError,
    StateSubscriptionMismatchError,
)
from asa_provisioner.engine.handlers import EngineContext
from asa_provisioner.engine.lock import StateLock
from asa_provisioner.engine.operations import (
    CreateOperation,
    DeleteOperation,
    ReplaceOperation,
    UpdateOperation,
)
from asa_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange
from asa_provisioner.resources.markers import collect_force_new_fields, collect_sensitive_fields

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ResourceChange, Literal["start", "done"]], None]

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from asa_provisioner.core import AzureProvider
    from asa_provisioner.core.state import ResourceInstance
    from asa_provisioner.engine.operations import Operation
    from asa_provisioner.engine.registry import ResourceTypeRegistry
    from asa_provisioner.resources.base import Resource


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def _sha256_hex(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _desired_dump(resource: Resource) -> dict[str, Any]:
    return resource.model_dump(exclude={"address"})


def _compute_config_digest(resources: Sequence[Resource]) -> str:
    items = [
        {"address": r.address, "resource_type": r.resource_type, "planned": _desired_dump(r)}
        for r in resources
    ]
    items.sort(key=lambda x: x["address"])
    return _sha256_hex(_canonical_json(items))


class ProvisioningEngine:
    """Terraform-like plan/apply engine for Azure resources."""

    def __init__(
        self,
        *,
        provider: AzureProvider,
        state_path: Path,
        registry: ResourceTypeRegistry,
        lock_timeout: float | None = None,
    ) -> None:
        self._provider = provider
        self._subscription_id = provider.subscription_id
        self._state_path = state_path
        self._registry = registry
        self._lock_timeout = lock_timeout

    @property
    def subscription_id(self) -> str:
        return self._subscription_id

    @property
    def state_path(self) -> Path:
        return self._state_path

    def _ctx(self) -> EngineContext:
        return EngineContext(
            provider=self._provider,
            subscription_id=self._subscription_id,
            timeouts=self._provider.timeouts,
        )

    def _lock(self) -> StateLock:
        return StateLock(self._state_path, timeout=self._lock_timeout)

    def _load_state(self) -> State:
        state = State.load_or_create(self._state_path, subscription_id=self._subscription_id)
        if state.subscription_id != self._subscription_id:
            raise StateSubscriptionMismatchError(self._subscription_id, state.subscription_id)
        logger.debug("State loaded: serial=%d, %d resources", state.serial, len(state.resources))
        return state

    def _load_state_for_apply(self, plan: Plan) -> State:
        if self._state_path.exists():
            return self._load_state()
        # If no state exists, bootstrap from the plan metadata (saved-plan semantics).
        return State(
            subscription_id=self._subscription_id,
            lineage=plan.metadata.state_lineage,
            serial=plan.metadata.state_serial,
        )

    def _refresh_state_in_place(self, state: State) -> bool:
        logger.debug("Refreshing state from Azure")
        changed = False
        ctx = self._ctx()

        for address, inst in list(state.resources.items()):
            handler = self._registry.handler_for(inst.resource_type)
            attrs = handler.read(ctx, inst)
            if attrs is None:
                logger.info("%s no longer exists remotely; removing from state", address)
                del state.resources[address]
                changed = True
                continue

            if inst.observe(attrs):
                changed = True

        logger.debug("State refreshed, changed=%s", changed)
        return changed

    def refresh(self, *, persist: bool = False) -> tuple[State, State]:
        """Refresh state from Azure. Returns (pre_refresh, post_refresh)."""
        with self._lock():
            state = self._load_state()
            snapshot = state.model_copy(deep=True)
            changed = self._refresh_state_in_place(state)
            if changed and persist:
                state.commit(self._state_path)
            return snapshot, state

    def _classify_change(self, resource: Resource, state: State) -> ResourceChange:
        """Classify a single resource as CREATE, UPDATE, REPLACE, or NOOP."""
        addr = resource.address
        desired = _desired_dump(resource)
        sensitive = sorted(collect_sensitive_fields(resource))

        prior_inst = state.resources.get(addr)
        if prior_inst is None:
            logger.debug("Classified %s as create", addr)
            return ResourceChange(
                address=addr,
                resource_type=resource.resource_type,
                action=Action.CREATE,
                desired=desired,
                planned=dict(desired),
                sensitive=sensitive,
            )

        prior = dict(prior_inst.attributes)
        diff = {
            k: {"from": prior.get(k), "to": v} for k, v in desired.items() if v != prior.get(k)
        }
        force_new = collect_force_new_fields(resource)
        replace_fields = sorted(k for k in diff if k in force_new)

        if replace_fields:
            action = Action.REPLACE
        elif diff:
            action = Action.UPDATE
        else:
            action = Action.NOOP
        logger.debug("Classified %s as %s", addr, action.value)
        return ResourceChange(
            address=addr,
            resource_type=resource.resource_type,
            action=action,
            desired=desired,
            prior=prior,
            planned=dict(desired),
            diff=diff or None,
            replace_fields=replace_fields,
            sensitive=sensitive,
        )

    def _plan_deletes(self, state: State, addrs: set[str]) -> list[ResourceChange]:
        changes: list[ResourceChange] = []
        for addr in sorted(addrs):
            inst = state.resources[addr]
            reg = self._registry.get(inst.resource_type)  # fail early if unknown
            changes.append(
                ResourceChange(
                    address=addr,
                    resource_type=inst.resource_type,
                    action=Action.DELETE,
                    prior=dict(inst.attributes),
                    sensitive=sorted(collect_sensitive_fields(reg.model)),
                )
            )
        return changes

    def plan(
        self, resources: Sequence[Resource], *, destroy: bool = False, refresh: bool = True
    ) -> Plan:
        logger.info(
            "Planning %d resources (destroy=%s, refresh=%s)", len(resources), destroy, refresh
        )
        # Only lock when refresh may write state.
        lock_cm = self._lock() if refresh else contextlib.nullcontext()
        with lock_cm:
            state = self._load_state()

            if refresh:
                changed = self._refresh_state_in_place(state)
                if changed:
                    state.commit(self._state_path)

            desired_by_addr: dict[str, Resource] = {}
            for r in resources:
                if r.address in desired_by_addr:
                    raise DuplicateAddressError(r.address)
                self._registry.get(r.resource_type)
                desired_by_addr[r.address] = r

            state_addrs = set(state.resources)
            if destroy:
                changes = self._plan_deletes(state, state_addrs)
            else:
                changes = [
                    self._classify_change(desired_by_addr[addr], state)
                    for addr in sorted(desired_by_addr)
                ]
                changes.extend(self._plan_deletes(state, state_addrs - set(desired_by_addr)))

            metadata = PlanMetadata(
                subscription_id=self._subscription_id,
                created_at=datetime.now(UTC),
                destroy=destroy,
                refresh=refresh,
                state_lineage=state.lineage,
                state_serial=state.serial,
                state_digest=compute_state_digest(state),
                config_digest=_compute_config_digest([] if destroy else resources),
                engine_version=__version__,
            )

            return Plan(metadata=metadata, changes=changes)

    @staticmethod
    def _build_operations(plan: Plan) -> list[Operation]:
        """One operation per actionable change; creates/updates run before deletes."""
        ops: list[Operation] = []
        seen: set[str] = set()
        for c in plan.changes:
            op: Operation
            match c.action:
                case Action.NOOP:
                    continue
                case Action.CREATE:
                    op = CreateOperation(key=c.address, change=c)
                case Action.UPDATE:
                    op = UpdateOperation(key=c.address, change=c)
                case Action.REPLACE:
                    op = ReplaceOperation(key=c.address, change=c)
                case Action.DELETE:
                    op = DeleteOperation(key=c.address, change=c)
                case _:
                    raise ValueError(f"Unknown action: {c.action}")

            if op.key in seen:
                raise ValueError(f"Duplicate operation key in plan: {op.key}")
            seen.add(op.key)
            ops.append(op)

        ops.sort(key=lambda o: (o.phase, o.key))
        return ops

    def apply(self, plan: Plan, *, progress: ProgressCallback | None = None) -> ApplyResult:
        with self._lock():
            state = self._load_state_for_apply(plan)
            if state.subscription_id != plan.metadata.subscription_id:
                raise StateSubscriptionMismatchError(
                    plan.metadata.subscription_id, state.subscription_id
                )

            # Stale plan detection
            if state.lineage != plan.metadata.state_lineage:
                raise StalePlanError("State lineage changed; re-run plan")
            if state.serial != plan.metadata.state_serial:
                raise StalePlanError("State serial changed; re-run plan")
            if compute_state_digest(state) != plan.metadata.state_digest:
                raise StalePlanError("State digest changed; re-run plan")

            ctx = self._ctx()
            applied: list[ResourceChange] = []
            ordered_ops = self._build_operations(plan)
            logger.info("Applying %d operations", len(ordered_ops))

            op_key = ""
            saved_digest = compute_state_digest(state)
            try:
                for op in ordered_ops:
                    op_key = op.key
                    logger.debug("Applying %s: %s", op.key, type(op).__name__)
                    if progress:
                        progress(op.change, "start")
                    op.run(ctx=ctx, state=state, registry=self._registry)
                    if progress:
                        progress(op.change, "done")

                    saved_digest = state.commit(self._state_path)
                    applied.append(op.change)
            except Exception as e:
                raise ApplyError(applied=applied, address=op_key, message=str(e)) from e
            finally:
                # A failed or interrupted operation may already have changed remote objects.
                if compute_state_digest(state) != saved_digest:
                    logger.info("Saving state recorded by %s before it failed", op_key)
                    state.commit(self._state_path)

            return ApplyResult(applied=applied)

    def import_resource(self, resource_type: str, resource_id: str) -> ResourceInstance:
        """Adopt an existing remote resource into state."""
        handler = self._registry.handler_for(resource_type)
        with self._lock():
            state = self._load_state()
            inst = handler.import_id(self._ctx(), resource_id)
            if inst.address in state.resources:
                raise ResourceImportError(
                    f"Resource {inst.address} is already managed "
                    f"(id {state.resources[inst.address].id})"
                )
            state.resources[inst.address] = inst
            state.commit(self._state_path)
            logger.info("Imported %s as %s", resource_id, inst.address)
            return inst
