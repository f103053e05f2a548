"""Tests for the SqlReferenceInputHandler."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest

from asa_provisioner.core import AzureProvider, ResourceInstance, StreamInputId, Timeouts
from asa_provisioner.core.client import ApiError, ApiTimeoutError
from asa_provisioner.engine.errors import (
    DeadlineExceededError,
    ImmutableFieldError,
    RemoteApiError,
    ResourceAlreadyExistsError,
    ResourceImportError,
    UnexpectedShapeError,
)
from asa_provisioner.engine.handlers import EngineContext
from asa_provisioner.engine.reference_input_handler import SqlReferenceInputHandler
from asa_provisioner.resources.reference_input import SqlReferenceInputResource

if TYPE_CHECKING:
    from conftest import FakeInputsClient

SUBSCRIPTION = "00000000-0000-0000-0000-000000000000"

_TYPE = "azurerm_stream_analytics_reference_input_mssql"
_RID = StreamInputId(SUBSCRIPTION, "rg1", "job1", "in1")


def _resource(**overrides: Any) -> SqlReferenceInputResource:
    fields: dict[str, Any] = {
        "name": "in1",
        "stream_analytics_job_name": "job1",
        "resource_group_name": "rg1",
        "server": "srv.database.windows.net",
        "database": "lookups",
        "user": "reader",
        "password": "s3cret",
        "full_snapshot_query": "SELECT * FROM users",
    }
    fields.update(overrides)
    return SqlReferenceInputResource(**fields)


def _prior(rid: StreamInputId = _RID, **attributes: Any) -> ResourceInstance:
    return ResourceInstance(
        address=f"{_TYPE}.{rid.resource_group}.{rid.job_name}.{rid.input_name}",
        resource_type=_TYPE,
        name=rid.input_name,
        id=rid.id(),
        attributes=attributes,
    )


def _entity(
    rid: StreamInputId = _RID, *, input_type: str = "Reference", **sql: Any
) -> dict[str, Any]:
    props: dict[str, Any] = {
        "server": "srv.database.windows.net",
        "database": "lookups",
        "user": "reader",
        "refreshType": "Static",
        "refreshRate": "00:00:00",
        "fullSnapshotQuery": "SELECT * FROM users",
    }
    props.update(sql)
    return {
        "id": rid.id(),
        "name": rid.input_name,
        "type": "Microsoft.StreamAnalytics/streamingjobs/inputs",
        "properties": {
            "type": input_type,
            "datasource": {"type": "Microsoft.Sql/Server/Database", "properties": props},
        },
    }


@pytest.fixture
def handler() -> SqlReferenceInputHandler:
    return SqlReferenceInputHandler()


@pytest.fixture
def ctx(fake_client: FakeInputsClient) -> EngineContext:
    provider = AzureProvider.from_client(fake_client, subscription_id=SUBSCRIPTION)
    return EngineContext(provider=provider, subscription_id=SUBSCRIPTION)


def _mock_ctx(client: MagicMock, timeouts: Timeouts | None = None) -> EngineContext:
    provider = AzureProvider.from_client(client, subscription_id=SUBSCRIPTION)
    return EngineContext(
        provider=provider, subscription_id=SUBSCRIPTION, timeouts=timeouts or Timeouts()
    )


class TestCreate:
    def test_creates_and_reads_back(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        result = handler.create(ctx, _resource())

        assert result["id"] == _RID.id()
        assert result["name"] == "in1"
        assert result["stream_analytics_job_name"] == "job1"
        assert result["resource_group_name"] == "rg1"
        assert result["server"] == "srv.database.windows.net"
        assert fake_client.verbs() == ["get", "put", "get"]

    def test_empty_refresh_values_send_defaults(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        result = handler.create(ctx, _resource(refresh_type="", refresh_rate=""))

        sql = fake_client.entities[_RID.id()]["properties"]["datasource"]["properties"]
        assert sql["refreshType"] == "Static"
        assert sql["refreshRate"] == "00:00:00"
        assert result["refresh_type"] == "Static"
        assert result["refresh_rate"] == "00:00:00"

    def test_body_carries_type_discriminators(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        handler.create(ctx, _resource(table="users", delta_snapshot_query="SELECT 1"))

        props = fake_client.entities[_RID.id()]["properties"]
        assert props["type"] == "Reference"
        assert props["datasource"]["type"] == "Microsoft.Sql/Server/Database"
        assert props["datasource"]["properties"]["table"] == "users"
        assert props["datasource"]["properties"]["deltaSnapshotQuery"] == "SELECT 1"

    def test_optional_fields_omitted_when_unset(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        result = handler.create(ctx, _resource(table=""))

        sql = fake_client.entities[_RID.id()]["properties"]["datasource"]["properties"]
        assert "table" not in sql
        assert "deltaSnapshotQuery" not in sql
        assert result["table"] is None
        assert result["delta_snapshot_query"] is None

    def test_password_kept_from_desired(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        result = handler.create(ctx, _resource(password="p@ss"))

        sql = fake_client.entities[_RID.id()]["properties"]["datasource"]["properties"]
        assert "password" not in sql
        assert result["password"] == "p@ss"

    def test_existing_input_is_not_adopted(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        fake_client.entities[_RID.id()] = _entity(server="other.database.windows.net")

        with pytest.raises(ResourceAlreadyExistsError, match="needs to be imported") as exc_info:
            handler.create(ctx, _resource())

        assert exc_info.value.resource_id == _RID.id()
        assert fake_client.verbs() == ["get"]
        sql = fake_client.entities[_RID.id()]["properties"]["datasource"]["properties"]
        assert sql["server"] == "other.database.windows.net"

    def test_existing_input_of_other_kind_is_not_adopted(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        fake_client.entities[_RID.id()] = _entity(input_type="Stream")

        with pytest.raises(ResourceAlreadyExistsError):
            handler.create(ctx, _resource())
        assert "put" not in fake_client.verbs()

    def test_precheck_failure_aborts_create(self, handler: SqlReferenceInputHandler) -> None:
        client = MagicMock()
        client.get.side_effect = ApiError("boom", status_code=500, code="InternalError")

        with pytest.raises(RemoteApiError, match="checking for presence of existing") as exc_info:
            handler.create(_mock_ctx(client), _resource())

        assert exc_info.value.status_code == 500
        assert "job1" in str(exc_info.value)
        client.create_or_replace.assert_not_called()

    def test_put_failure_wrapped_with_identity(self, handler: SqlReferenceInputHandler) -> None:
        client = MagicMock()
        client.get.side_effect = ApiError("missing", status_code=404, code="NotFound")
        client.create_or_replace.side_effect = ApiError(
            "bad query", status_code=400, code="BadRequest"
        )

        with pytest.raises(RemoteApiError, match=r"creating Stream Input 'in1'") as exc_info:
            handler.create(_mock_ctx(client), _resource())

        assert "bad query" in str(exc_info.value)
        assert exc_info.value.action == "creating"
        assert exc_info.value.resource_id == _RID

    def test_missing_after_write_is_an_error(self, handler: SqlReferenceInputHandler) -> None:
        client = MagicMock()
        client.get.side_effect = ApiError("missing", status_code=404)
        client.create_or_replace.return_value = {}

        with pytest.raises(RemoteApiError, match="not found after write") as exc_info:
            handler.create(_mock_ctx(client), _resource())

        assert exc_info.value.created_id == _RID.id()

    def test_read_back_failure_reports_created_id(
        self, handler: SqlReferenceInputHandler
    ) -> None:
        client = MagicMock()
        client.get.side_effect = [
            ApiError("missing", status_code=404),
            ApiError("internal error", status_code=500, code="InternalServerError"),
        ]

        with pytest.raises(RemoteApiError, match="retrieving") as exc_info:
            handler.create(_mock_ctx(client), _resource())

        assert exc_info.value.created_id == _RID.id()
        assert exc_info.value.status_code == 500
        client.create_or_replace.assert_called_once()

    def test_precheck_failure_has_no_created_id(self, handler: SqlReferenceInputHandler) -> None:
        client = MagicMock()
        client.get.side_effect = ApiError("boom", status_code=500)

        with pytest.raises(RemoteApiError) as exc_info:
            handler.create(_mock_ctx(client), _resource())

        assert exc_info.value.created_id == ""

    def test_put_is_create_only(self, handler: SqlReferenceInputHandler) -> None:
        client = MagicMock()
        client.get.side_effect = [ApiError("missing", status_code=404), _entity()]

        handler.create(_mock_ctx(client), _resource())

        assert client.create_or_replace.call_args.kwargs["create_only"] is True

    def test_input_created_concurrently_is_not_overwritten(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        real_put = fake_client.create_or_replace

        def racing_put(rid: StreamInputId, body: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
            fake_client.entities[rid.id()] = _entity(server="other.database.windows.net")
            return real_put(rid, body, **kwargs)

        monkeypatch.setattr(fake_client, "create_or_replace", racing_put)

        with pytest.raises(RemoteApiError, match="PreconditionFailed") as exc_info:
            handler.create(ctx, _resource())

        assert exc_info.value.status_code == 412
        assert exc_info.value.created_id == ""
        sql = fake_client.entities[_RID.id()]["properties"]["datasource"]["properties"]
        assert sql["server"] == "other.database.windows.net"

    def test_calls_share_one_deadline(self, handler: SqlReferenceInputHandler) -> None:
        client = MagicMock()
        client.get.side_effect = [ApiError("missing", status_code=404), _entity()]
        ctx = _mock_ctx(client, Timeouts(create=120))

        handler.create(ctx, _resource())

        timeouts = [call.kwargs["timeout"] for call in client.get.call_args_list]
        timeouts.append(client.create_or_replace.call_args.kwargs["timeout"])
        assert all(0 < t <= 120 for t in timeouts)

    def test_expired_deadline_stops_before_any_call(
        self, handler: SqlReferenceInputHandler
    ) -> None:
        client = MagicMock()
        ctx = _mock_ctx(client, Timeouts(create=1e-9))

        with pytest.raises(DeadlineExceededError, match="deadline"):
            handler.create(ctx, _resource())

        client.get.assert_not_called()
        client.create_or_replace.assert_not_called()

    def test_client_timeout_maps_to_deadline_exceeded(
        self, handler: SqlReferenceInputHandler
    ) -> None:
        client = MagicMock()
        client.get.side_effect = ApiError("missing", status_code=404)
        client.create_or_replace.side_effect = ApiTimeoutError("PUT timed out after 10s")

        with pytest.raises(DeadlineExceededError, match="timed out"):
            handler.create(_mock_ctx(client), _resource())


class TestRead:
    def test_returns_attributes(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        fake_client.entities[_RID.id()] = _entity(
            table="users", refreshType="RefreshPeriodicallyWithFull", refreshRate="00:15:00"
        )

        result = handler.read(ctx, _prior())

        assert result is not None
        assert result == {
            "id": _RID.id(),
            "name": "in1",
            "stream_analytics_job_name": "job1",
            "resource_group_name": "rg1",
            "server": "srv.database.windows.net",
            "database": "lookups",
            "user": "reader",
            "password": None,
            "table": "users",
            "refresh_type": "RefreshPeriodicallyWithFull",
            "refresh_rate": "00:15:00",
            "full_snapshot_query": "SELECT * FROM users",
            "delta_snapshot_query": None,
        }

    def test_missing_returns_none(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        assert handler.read(ctx, _prior()) is None
        assert fake_client.verbs() == ["get"]

    def test_password_preserved_from_prior(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        fake_client.entities[_RID.id()] = _entity()

        result = handler.read(ctx, _prior(password="s3cret"))

        assert result is not None
        assert result["password"] == "s3cret"

    def test_empty_strings_read_as_unset(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        fake_client.entities[_RID.id()] = _entity(table="", deltaSnapshotQuery="")

        result = handler.read(ctx, _prior())

        assert result is not None
        assert result["table"] is None
        assert result["delta_snapshot_query"] is None

    def test_identity_comes_from_id(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        rid = StreamInputId(SUBSCRIPTION, "Other-RG", "job9", "lookup")
        fake_client.entities[rid.id()] = _entity(rid)

        result = handler.read(ctx, _prior(rid))

        assert result is not None
        assert result["resource_group_name"] == "Other-RG"
        assert result["stream_analytics_job_name"] == "job9"
        assert result["name"] == "lookup"

    def test_stream_input_is_rejected(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        fake_client.entities[_RID.id()] = _entity(input_type="Stream")

        with pytest.raises(UnexpectedShapeError, match="to a Reference Input"):
            handler.read(ctx, _prior())

    def test_other_datasource_is_rejected(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        entity = _entity()
        entity["properties"]["datasource"]["type"] = "Microsoft.Storage/Blob"
        fake_client.entities[_RID.id()] = entity

        with pytest.raises(UnexpectedShapeError, match="to an SQL Reference Input"):
            handler.read(ctx, _prior())

    def test_missing_properties_is_rejected(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        fake_client.entities[_RID.id()] = {"id": _RID.id(), "name": "in1"}

        with pytest.raises(UnexpectedShapeError):
            handler.read(ctx, _prior())

    def test_malformed_prior_id_raises(
        self, ctx: EngineContext, handler: SqlReferenceInputHandler
    ) -> None:
        prior = ResourceInstance(
            address=f"{_TYPE}.rg1.job1.in1", resource_type=_TYPE, name="in1", id="/bogus"
        )

        with pytest.raises(ValueError, match="Invalid stream input ID"):
            handler.read(ctx, prior)

    def test_api_error_wrapped(self, handler: SqlReferenceInputHandler) -> None:
        client = MagicMock()
        client.get.side_effect = ApiError("forbidden", status_code=403, code="AuthorizationFailed")

        with pytest.raises(RemoteApiError, match="retrieving Stream Input 'in1'") as exc_info:
            handler.read(_mock_ctx(client), _prior())

        assert exc_info.value.status_code == 403
        assert "AuthorizationFailed" in str(exc_info.value)

    def test_uses_read_timeout(self, handler: SqlReferenceInputHandler) -> None:
        client = MagicMock()
        client.get.return_value = _entity()

        handler.read(_mock_ctx(client, Timeouts(read=7)), _prior())

        assert 0 < client.get.call_args.kwargs["timeout"] <= 7


class TestUpdate:
    def test_patches_and_reads_back(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        handler.create(ctx, _resource())
        prior = _prior(password="s3cret")
        fake_client.calls.clear()

        result = handler.update(ctx, _resource(database="lookups_v2", password="n3w"), prior)

        assert fake_client.verbs() == ["patch", "get"]
        assert result["database"] == "lookups_v2"
        assert result["password"] == "n3w"

    def test_identity_change_rejected(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        handler.create(ctx, _resource())
        fake_client.calls.clear()

        with pytest.raises(ImmutableFieldError, match="must be replaced"):
            handler.update(ctx, _resource(resource_group_name="rg2"), _prior())

        assert fake_client.calls == []

    def test_missing_input_wrapped(
        self, ctx: EngineContext, handler: SqlReferenceInputHandler
    ) -> None:
        with pytest.raises(RemoteApiError, match="updating") as exc_info:
            handler.update(ctx, _resource(), _prior())

        assert exc_info.value.status_code == 404


class TestDelete:
    def test_deletes(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        fake_client.entities[_RID.id()] = _entity()

        handler.delete(ctx, _prior())

        assert _RID.id() not in fake_client.entities
        assert handler.read(ctx, _prior()) is None

    def test_already_deleted_is_success(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        handler.delete(ctx, _prior())

        assert fake_client.verbs() == ["delete"]

    def test_other_errors_propagate(self, handler: SqlReferenceInputHandler) -> None:
        client = MagicMock()
        client.delete.side_effect = ApiError("job is running", status_code=409, code="Conflict")

        with pytest.raises(RemoteApiError, match="deleting Stream Input 'in1'"):
            handler.delete(_mock_ctx(client), _prior())


class TestImport:
    def test_imports_existing_input(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        fake_client.entities[_RID.id()] = _entity()

        inst = handler.import_id(ctx, _RID.id())

        assert inst.address == f"{_TYPE}.rg1.job1.in1"
        assert inst.id == _RID.id()
        assert inst.name == "in1"
        assert inst.attributes["server"] == "srv.database.windows.net"
        assert inst.attributes["password"] is None
        assert inst.attributes_hash

    def test_address_includes_resource_group(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        rid = StreamInputId(SUBSCRIPTION, "rg2", "job1", "in1")
        fake_client.entities[rid.id()] = _entity()

        inst = handler.import_id(ctx, rid.id())

        assert inst.address == f"{_TYPE}.rg2.job1.in1"
        assert inst.attributes["resource_group_name"] == "rg2"

    def test_missing_input_fails(
        self, ctx: EngineContext, handler: SqlReferenceInputHandler
    ) -> None:
        with pytest.raises(ResourceImportError, match="non-existent"):
            handler.import_id(ctx, _RID.id())

    def test_other_subscription_rejected(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        rid = StreamInputId("11111111-1111-1111-1111-111111111111", "rg1", "job1", "in1")

        with pytest.raises(ResourceImportError, match="subscription"):
            handler.import_id(ctx, rid.id())
        assert fake_client.calls == []

    def test_malformed_id_rejected(
        self, ctx: EngineContext, handler: SqlReferenceInputHandler
    ) -> None:
        with pytest.raises(ValueError, match="Invalid stream input ID"):
            handler.import_id(ctx, "/subscriptions/x/resourceGroups/rg1")


class TestLifecycle:
    def test_create_read_update_delete(
        self,
        ctx: EngineContext,
        handler: SqlReferenceInputHandler,
        fake_client: FakeInputsClient,
    ) -> None:
        created = handler.create(ctx, _resource(refresh_type="", refresh_rate=""))
        expected_id = (
            f"/subscriptions/{SUBSCRIPTION}/resourceGroups/rg1"
            "/providers/Microsoft.StreamAnalytics/streamingjobs/job1/inputs/in1"
        )
        assert created["id"] == expected_id

        observed = handler.read(ctx, _prior())
        assert observed is not None
        assert observed["refresh_type"] == "Static"
        assert observed["refresh_rate"] == "00:00:00"
        assert observed["password"] is None

        updated = handler.update(
            ctx,
            _resource(refresh_type="RefreshPeriodicallyWithFull", refresh_rate="01:00:00"),
            _prior(**created),
        )
        assert updated["refresh_type"] == "RefreshPeriodicallyWithFull"

        handler.delete(ctx, _prior())
        assert handler.read(ctx, _prior()) is None
        assert fake_client.entities == {}
