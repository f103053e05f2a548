"""Configuration models for YAML-based provisioning."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from asa_provisioner.core.client import DEFAULT_API_VERSION, DEFAULT_ENDPOINT
from asa_provisioner.core.provider import Timeouts
from asa_provisioner.resources.base import Resource  # noqa: TC001 - Pydantic needs this at runtime
from asa_provisioner.resources.reference_input import (
    SqlReferenceInputResource,  # noqa: TC001 - Pydantic needs this at runtime
)


class ProviderConfig(BaseSettings):
    """Azure provider connection settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``ARM_`` prefix.  Constructor kwargs take precedence.

    ``access_token`` is typically provided via the ``ARM_ACCESS_TOKEN``
    environment variable rather than YAML to avoid committing secrets to
    version control.
    """

    model_config = SettingsConfigDict(env_prefix="ARM_", extra="forbid")

    subscription_id: str = Field(min_length=1)
    access_token: str | None = None
    endpoint: str = DEFAULT_ENDPOINT
    api_version: str = DEFAULT_API_VERSION
    timeouts: Timeouts = Field(default_factory=Timeouts)


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


class ReferenceInputsConfig(BaseModel):
    """Reference inputs, grouped by data source kind."""

    model_config = ConfigDict(extra="forbid")

    mssql: Annotated[list[SqlReferenceInputResource], BeforeValidator(_none_to_list)] = []


class Config(BaseModel):
    """Provisioning configuration; validates YAML structure directly."""

    provider: ProviderConfig
    state_path: Path = Path(".asa-state.json")
    reference_inputs: Annotated[
        ReferenceInputsConfig, BeforeValidator(lambda v: v if v is not None else {})
    ] = Field(default_factory=ReferenceInputsConfig)
    config_dir: Path = Path()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def resources(self) -> list[Resource]:
        """All declared resources. Ordering is not significant."""
        return [*self.reference_inputs.mssql]
