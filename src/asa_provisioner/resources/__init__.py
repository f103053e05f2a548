"""Azure resource definitions."""

from asa_provisioner.resources.base import Resource
from asa_provisioner.resources.reference_input import SqlReferenceInputResource

__all__ = [
    "Resource",
    "SqlReferenceInputResource",
]
