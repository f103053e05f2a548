"""SQL reference input handler implementing CRUD via the inputs management API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from asa_provisioner.core.client import ApiError, ApiTimeoutError
from asa_provisioner.core.resource_id import StreamInputId
from asa_provisioner.core.state import ResourceInstance
from asa_provisioner.engine.errors import (
    DeadlineExceededError,
    ImmutableFieldError,
    ReconcileError,
    RemoteApiError,
    ResourceAlreadyExistsError,
    ResourceImportError,
    UnexpectedShapeError,
)
from asa_provisioner.engine.handlers import ResourceHandler
from asa_provisioner.resources.markers import collect_sensitive_fields, extract_api_attrs
from asa_provisioner.resources.reference_input import (
    REFERENCE_INPUT_TYPE,
    SQL_DATASOURCE_TYPE,
    SqlReferenceInputResource,
)

if TYPE_CHECKING:
    from asa_provisioner.engine.handlers import Deadline, EngineContext

logger = logging.getLogger(__name__)


def _remote_error(action: str, rid: StreamInputId, exc: ApiError) -> RemoteApiError:
    cls = DeadlineExceededError if isinstance(exc, ApiTimeoutError) else RemoteApiError
    return cls(action, rid, exc, status_code=exc.status_code)


def _timeout(action: str, rid: StreamInputId, deadline: Deadline) -> float:
    if deadline.expired:
        raise DeadlineExceededError(action, rid, f"deadline of {deadline.seconds:g}s exceeded")
    return deadline.remaining()


class SqlReferenceInputHandler(ResourceHandler["SqlReferenceInputResource"]):
    """CRUD handler for Stream Analytics SQL reference inputs.

    The API never returns the SQL password, so observed state carries the
    password over from the prior instance.
    """

    model = SqlReferenceInputResource

    def _resource_id(self, ctx: EngineContext, desired: SqlReferenceInputResource) -> StreamInputId:
        return StreamInputId(
            subscription_id=ctx.subscription_id,
            resource_group=desired.resource_group_name,
            job_name=desired.stream_analytics_job_name,
            input_name=desired.name,
        )

    def _get(
        self, ctx: EngineContext, rid: StreamInputId, deadline: Deadline, *, action: str
    ) -> dict[str, Any] | None:
        """GET the input; ``None`` when the API reports not found."""
        try:
            return ctx.provider.client.get(rid, timeout=_timeout(action, rid, deadline))
        except ApiError as exc:
            if exc.not_found:
                return None
            raise _remote_error(action, rid, exc) from exc

    def _read_attrs(
        self, rid: StreamInputId, body: dict[str, Any], prior: ResourceInstance
    ) -> dict[str, Any]:
        """Map an API entity to stored attributes, keyed to match model_dump output."""
        props = body.get("properties")
        if not isinstance(props, dict) or props.get("type") != REFERENCE_INPUT_TYPE:
            kind = props.get("type") if isinstance(props, dict) else None
            raise UnexpectedShapeError(
                f"converting {rid} to a Reference Input: got properties of type {kind!r}"
            )
        datasource = props.get("datasource")
        if not isinstance(datasource, dict) or datasource.get("type") != SQL_DATASOURCE_TYPE:
            kind = datasource.get("type") if isinstance(datasource, dict) else None
            raise UnexpectedShapeError(
                f"converting {rid} to an SQL Reference Input: got datasource of type {kind!r}"
            )

        attrs: dict[str, Any] = {
            k: (None if v == "" else v) for k, v in extract_api_attrs(self.model, body).items()
        }
        attrs.update(
            {
                "id": rid.id(),
                "name": rid.input_name,
                "stream_analytics_job_name": rid.job_name,
                "resource_group_name": rid.resource_group,
            }
        )
        for field_name in sorted(collect_sensitive_fields(self.model)):
            attrs[field_name] = prior.attributes.get(field_name)
        return attrs

    def _read(
        self, ctx: EngineContext, prior: ResourceInstance, deadline: Deadline
    ) -> dict[str, Any] | None:
        rid = StreamInputId.parse(prior.id)
        body = self._get(ctx, rid, deadline, action="retrieving")
        if body is None:
            logger.debug("%s was not found - removing from state", rid)
            return None
        return self._read_attrs(rid, body, prior)

    def _read_back(
        self,
        ctx: EngineContext,
        rid: StreamInputId,
        desired: SqlReferenceInputResource,
        deadline: Deadline,
    ) -> dict[str, Any]:
        """Re-read after a write; the write response may not reflect server-side normalization."""
        pending = ResourceInstance(
            address=desired.address,
            resource_type=desired.resource_type,
            name=desired.name,
            id=rid.id(),
            attributes={"password": desired.password},
        )
        attrs = self._read(ctx, pending, deadline)
        if attrs is None:
            raise RemoteApiError("reading back", rid, "resource not found after write")
        return attrs

    def create(self, ctx: EngineContext, desired: SqlReferenceInputResource) -> dict[str, Any]:
        """Create the input. Refuses to adopt an input that already exists.

        When the read-back fails after a successful ``PUT`` the raised error
        carries ``created_id``.
        """
        deadline = ctx.deadline("create")
        rid = self._resource_id(ctx, desired)
        logger.info("Creating %s", rid)

        existing = self._get(ctx, rid, deadline, action="checking for presence of existing")
        if existing is not None and existing.get("id"):
            raise ResourceAlreadyExistsError(desired.resource_type, rid.id())

        body = desired.to_api_body()
        try:
            ctx.provider.client.create_or_replace(
                rid, body, timeout=_timeout("creating", rid, deadline), create_only=True
            )
        except ApiError as exc:
            raise _remote_error("creating", rid, exc) from exc

        try:
            return self._read_back(ctx, rid, desired, deadline)
        except ReconcileError as exc:
            exc.created_id = rid.id()
            raise

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        """Read the input. Returns None if it was deleted outside the provisioner."""
        return self._read(ctx, prior, ctx.deadline("read"))

    def update(
        self,
        ctx: EngineContext,
        desired: SqlReferenceInputResource,
        prior: ResourceInstance,
    ) -> dict[str, Any]:
        """Patch the input in place. Identity fields can never change here."""
        deadline = ctx.deadline("update")
        rid = StreamInputId.parse(prior.id)
        wanted = self._resource_id(ctx, desired)
        if wanted != rid:
            raise ImmutableFieldError(
                f"updating {rid}: name, stream_analytics_job_name and resource_group_name "
                f"cannot change in place (wanted {wanted.id()}); the input must be replaced"
            )
        logger.info("Updating %s", rid)

        try:
            ctx.provider.client.update(
                rid, desired.to_api_body(), timeout=_timeout("updating", rid, deadline)
            )
        except ApiError as exc:
            raise _remote_error("updating", rid, exc) from exc

        return self._read_back(ctx, rid, desired, deadline)

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        """Delete the input. An input that is already gone counts as deleted."""
        deadline = ctx.deadline("delete")
        rid = StreamInputId.parse(prior.id)
        logger.info("Deleting %s", rid)
        try:
            ctx.provider.client.delete(rid, timeout=_timeout("deleting", rid, deadline))
        except ApiError as exc:
            if exc.not_found:
                logger.debug("%s was already deleted", rid)
                return
            raise _remote_error("deleting", rid, exc) from exc

    def import_id(self, ctx: EngineContext, resource_id: str) -> ResourceInstance:
        """Adopt an existing input by its ARM ID. The password is left unset."""
        rid = StreamInputId.parse(resource_id)
        if rid.subscription_id != ctx.subscription_id:
            raise ResourceImportError(
                f"Cannot import {resource_id}: it belongs to subscription "
                f"{rid.subscription_id}, not {ctx.subscription_id}"
            )

        resource_type = self.model.resource_type
        label = self.model.address_label(rid.resource_group, rid.job_name, rid.input_name)
        inst = ResourceInstance(
            address=f"{resource_type}.{label}",
            resource_type=resource_type,
            name=rid.input_name,
            id=rid.id(),
        )
        attrs = self.read(ctx, inst)
        if attrs is None:
            raise ResourceImportError(f"Cannot import non-existent remote object {resource_id}")

        inst.observe(attrs)
        return inst
