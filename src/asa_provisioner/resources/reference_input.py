"""Stream Analytics reference input resource models."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar

from pydantic import AfterValidator, BeforeValidator, Field

from asa_provisioner.resources.base import Resource
from asa_provisioner.resources.markers import ApiParam, ForceNew, Sensitive, build_api_body

REFERENCE_INPUT_TYPE = "Reference"
SQL_DATASOURCE_TYPE = "Microsoft.Sql/Server/Database"

DEFAULT_REFRESH_TYPE = "Static"
DEFAULT_REFRESH_RATE = "00:00:00"

_SQL = "properties.datasource.properties"


def _not_blank(v: str) -> str:
    if not v.strip():
        raise ValueError("must not be empty or consist only of whitespace")
    return v


def _optional_not_blank(v: str | None) -> str | None:
    return v if v is None else _not_blank(v)


def _empty_to_none(v: Any) -> Any:
    return None if v == "" else v


def _empty_to(default: str) -> BeforeValidator:
    """Treat a missing or empty-string value as *default*."""
    return BeforeValidator(lambda v: default if v is None or v == "" else v)


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]
OptionalStr = Annotated[
    str | None, BeforeValidator(_empty_to_none), AfterValidator(_optional_not_blank)
]


class SqlReferenceInputResource(Resource):
    """A reference input that loads lookup data from an Azure SQL database.

    ``table``, ``delta_snapshot_query``, ``refresh_type`` and ``refresh_rate``
    treat an empty string exactly like an omitted value.
    """

    resource_type: ClassVar[str] = "azurerm_stream_analytics_reference_input_mssql"
    yaml_alias: ClassVar[str] = "mssql"

    name: Annotated[NonBlankStr, ForceNew(), ApiParam("name")]
    stream_analytics_job_name: Annotated[NonBlankStr, ForceNew()]
    resource_group_name: Annotated[str, ForceNew()] = Field(
        min_length=1, max_length=90, pattern=r"^[-\w\.\(\)]*[-\w\(\)]$"
    )

    server: Annotated[NonBlankStr, ApiParam(f"{_SQL}.server")]
    database: Annotated[NonBlankStr, ApiParam(f"{_SQL}.database")]
    user: Annotated[NonBlankStr, ApiParam(f"{_SQL}.user")]
    password: Annotated[NonBlankStr, Sensitive(), ApiParam(f"{_SQL}.password", readable=False)]
    table: Annotated[OptionalStr, ApiParam(f"{_SQL}.table")] = None
    refresh_type: Annotated[
        NonBlankStr, _empty_to(DEFAULT_REFRESH_TYPE), ApiParam(f"{_SQL}.refreshType")
    ] = DEFAULT_REFRESH_TYPE
    refresh_rate: Annotated[
        NonBlankStr, _empty_to(DEFAULT_REFRESH_RATE), ApiParam(f"{_SQL}.refreshRate")
    ] = DEFAULT_REFRESH_RATE
    full_snapshot_query: Annotated[NonBlankStr, ApiParam(f"{_SQL}.fullSnapshotQuery")]
    delta_snapshot_query: Annotated[OptionalStr, ApiParam(f"{_SQL}.deltaSnapshotQuery")] = None

    @staticmethod
    def address_label(resource_group: str, job_name: str, name: str) -> str:
        """Address label of an input; a job is only unique within its resource group."""
        return f"{resource_group}.{job_name}.{name}"

    @property
    def address_name(self) -> str:
        return self.address_label(
            self.resource_group_name, self.stream_analytics_job_name, self.name
        )

    def to_api_body(self) -> dict[str, Any]:
        """Build the ``PUT``/``PATCH`` request body."""
        return build_api_body(
            self,
            base={
                "properties": {
                    "type": REFERENCE_INPUT_TYPE,
                    "datasource": {"type": SQL_DATASOURCE_TYPE},
                }
            },
        )
