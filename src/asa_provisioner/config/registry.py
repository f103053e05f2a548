"""Default resource type registry factory."""

from __future__ import annotations

from asa_provisioner.engine.reference_input_handler import SqlReferenceInputHandler
from asa_provisioner.engine.registry import ResourceTypeRegistry
from asa_provisioner.resources.reference_input import SqlReferenceInputResource


def default_registry() -> ResourceTypeRegistry:
    """Create a fresh registry with all built-in resource types and handlers."""
    registry = ResourceTypeRegistry()
    registry.register(SqlReferenceInputResource, SqlReferenceInputHandler())
    return registry
