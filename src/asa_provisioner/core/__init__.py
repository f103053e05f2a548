"""Core infrastructure components for ASA Provisioner."""

from asa_provisioner.core.client import ApiError, ApiTimeoutError, InputsClient
from asa_provisioner.core.provider import AzureProvider, Timeouts, TokenAuth
from asa_provisioner.core.resource_id import InvalidResourceIdError, StreamInputId
from asa_provisioner.core.state import ResourceInstance, State

__all__ = [
    "ApiError",
    "ApiTimeoutError",
    "AzureProvider",
    "InputsClient",
    "InvalidResourceIdError",
    "ResourceInstance",
    "State",
    "StreamInputId",
    "Timeouts",
    "TokenAuth",
]
