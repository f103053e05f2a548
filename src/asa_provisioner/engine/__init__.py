"""Plan and apply engine for Azure resources."""

from asa_provisioner.engine.engine import ProvisioningEngine
from asa_provisioner.engine.errors import (
    ApplyError,
    DeadlineExceededError,
    DuplicateAddressError,
    EngineError,
    ImmutableFieldError,
    ReconcileError,
    RemoteApiError,
    ResourceAlreadyExistsError,
    ResourceImportError,
    StalePlanError,
    StateLockError,
    StateSubscriptionMismatchError,
    UnexpectedShapeError,
    UnknownResourceTypeError,
)
from asa_provisioner.engine.handlers import Deadline, EngineContext, ResourceHandler
from asa_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
from asa_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange

__all__ = [
    "Action",
    "ApplyError",
    "ApplyResult",
    "Deadline",
    "DeadlineExceededError",
    "DuplicateAddressError",
    "EngineContext",
    "EngineError",
    "ImmutableFieldError",
    "Plan",
    "PlanMetadata",
    "ProvisioningEngine",
    "ReconcileError",
    "RemoteApiError",
    "ResourceAlreadyExistsError",
    "ResourceChange",
    "ResourceHandler",
    "ResourceImportError",
    "ResourceTypeRegistration",
    "ResourceTypeRegistry",
    "StalePlanError",
    "StateLockError",
    "StateSubscriptionMismatchError",
    "UnexpectedShapeError",
    "UnknownResourceTypeError",
]
