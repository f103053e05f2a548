"""Engine-facing handler interfaces."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, Literal, TypeVar

from asa_provisioner.core.provider import Timeouts
from asa_provisioner.resources.base import Resource

if TYPE_CHECKING:
    from asa_provisioner.core import AzureProvider
    from asa_provisioner.core.state import ResourceInstance

R = TypeVar("R", bound=Resource)


class Deadline:
    """Wall-clock budget shared by every remote call of one operation."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        """Seconds left; ``0.0`` once expired."""
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0


@dataclass(frozen=True)
class EngineContext:
    """Per-call context passed to handlers."""

    provider: AzureProvider
    subscription_id: str
    timeouts: Timeouts = field(default_factory=Timeouts)

    def deadline(self, kind: Literal["create", "read", "update", "delete"]) -> Deadline:
        """Start the deadline for one operation of the given kind."""
        return Deadline(getattr(self.timeouts, kind))


class ResourceHandler(Generic[R]):
    """Base class for resource handlers.

    Handlers are responsible for translating resources into management API
    calls. Subclass and override the CRUD methods; import is optional.
    """

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        """Read the resource. Return None if it no longer exists."""
        raise NotImplementedError

    def create(self, ctx: EngineContext, desired: R) -> dict[str, Any]:
        """Create the resource. Return stored attributes, including ``id``."""
        raise NotImplementedError

    def update(self, ctx: EngineContext, desired: R, prior: ResourceInstance) -> dict[str, Any]:
        """Update the resource in place. Return stored attributes."""
        raise NotImplementedError

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        """Delete the resource. Already-deleted resources are not an error."""
        raise NotImplementedError

    def import_id(self, ctx: EngineContext, resource_id: str) -> ResourceInstance:
        """Adopt an existing remote resource by ID. Return the state instance."""
        _ = ctx, resource_id
        raise NotImplementedError(f"{type(self).__name__} does not support import")
