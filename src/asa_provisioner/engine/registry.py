"""Resource types known to the engine, each with its model and handler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from asa_provisioner.engine.errors import UnknownResourceTypeError

if TYPE_CHECKING:
    from asa_provisioner.engine.handlers import ResourceHandler
    from asa_provisioner.resources.base import Resource


@dataclass(frozen=True)
class ResourceTypeRegistration:
    model: type[Resource]
    handler: ResourceHandler[Any]

    @property
    def resource_type(self) -> str:
        return self.model.resource_type


class ResourceTypeRegistry:
    def __init__(self) -> None:
        self._by_type: dict[str, ResourceTypeRegistration] = {}

    def __contains__(self, resource_type: object) -> bool:
        return resource_type in self._by_type

    def register(
        self, model: type[Resource], handler: ResourceHandler[Any]
    ) -> ResourceTypeRegistration:
        name = getattr(model, "resource_type", None)
        if not isinstance(name, str) or not name:
            raise ValueError("Resource model must define a non-empty classvar `resource_type`")
        if name in self._by_type:
            raise ValueError(f"Resource type already registered: {name}")

        registration = ResourceTypeRegistration(model=model, handler=handler)
        self._by_type[name] = registration
        return registration

    def get(self, resource_type: str) -> ResourceTypeRegistration:
        if resource_type not in self._by_type:
            raise UnknownResourceTypeError(resource_type)
        return self._by_type[resource_type]

    def handler_for(self, resource_type: str) -> ResourceHandler[Any]:
        return self.get(resource_type).handler

    def resource_types(self) -> list[str]:
        return sorted(self._by_type)
