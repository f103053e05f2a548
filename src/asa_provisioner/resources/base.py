"""Base resource class for managed Azure resources."""

from typing import Annotated, ClassVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

from asa_provisioner.resources.markers import ForceNew


class Resource(BaseModel):
    """Base class for all managed resources.

    Resources are pure, immutable data - they define the desired state.
    Handlers know how to CRUD resources.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    resource_type: ClassVar[str]

    name: Annotated[str, ForceNew()] = Field(min_length=1)

    @property
    def address_name(self) -> str:
        """Address label; must be unique per resource type."""
        return self.name

    @computed_field  # type: ignore[prop-decorator]
    @property
    def address(self) -> str:
        """Unique address for this resource (e.g., '<resource_type>.<label>')."""
        return f"{self.resource_type}.{self.address_name}"
