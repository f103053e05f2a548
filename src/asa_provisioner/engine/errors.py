"""Engine error types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from asa_provisioner.core.resource_id import StreamInputId


class EngineError(Exception):
    """Base exception for engine errors."""


class UnknownResourceTypeError(EngineError):
    """Raised when a resource type has no registration/handler."""

    def __init__(self, resource_type: str) -> None:
        super().__init__(f"Unknown resource type: {resource_type}")
        self.resource_type = resource_type


class DuplicateAddressError(EngineError):
    """Raised when multiple desired resources share the same address."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Duplicate resource address: {address}")
        self.address = address


class StateSubscriptionMismatchError(EngineError):
    """Raised when the on-disk state belongs to a different subscription."""

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"State subscription_id mismatch: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class StalePlanError(EngineError):
    """Raised when applying a plan against a different state than planned."""


class StateLockError(EngineError):
    """Raised when the state lock cannot be acquired or released."""


class ApplyError(EngineError):
    """Raised when an apply fails mid-way through.

    Carries the partial result (what was applied before the failure) so
    callers can inspect progress.  The original exception is chained via
    ``__cause__``.
    """

    def __init__(self, *, applied: list[Any], address: str, message: str) -> None:
        from asa_provisioner.engine.types import ApplyResult

        self.result = ApplyResult(applied=applied)
        self.address = address
        super().__init__(f"Apply failed on {address}: {message}")


class ResourceImportError(EngineError):
    """Raised when a resource cannot be imported into state."""


# ── Reconciliation errors (raised by handlers) ──────────────────────


class ReconcileError(EngineError):
    """A lifecycle operation against the remote API failed.

    ``created_id`` is set when the remote resource was created before the
    failure, so the caller can still track it in state.
    """

    created_id: str = ""


class ResourceAlreadyExistsError(ReconcileError):
    """Create found an existing remote resource at the computed ID."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        super().__init__(
            f"A resource with the ID {resource_id!r} already exists - to be managed "
            f"this resource needs to be imported into the state. Please see the "
            f"`import` command for {resource_type!r}."
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class UnexpectedShapeError(ReconcileError):
    """The remote entity is not the resource variant the handler manages."""


class ImmutableFieldError(ReconcileError):
    """An update would change a field that requires replacement."""


class RemoteApiError(ReconcileError):
    """A management API call failed for a reason other than not-found."""

    def __init__(
        self,
        action: str,
        resource_id: StreamInputId,
        detail: object,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"{action} {resource_id}: {detail}")
        self.action = action
        self.resource_id = resource_id
        self.status_code = status_code


class DeadlineExceededError(RemoteApiError):
    """A management API call did not finish before its deadline."""
