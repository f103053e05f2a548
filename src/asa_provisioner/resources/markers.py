"""Declarative field markers for resource models.

Three markers attach to Pydantic fields via ``Annotated``:

- ``ApiParam``  - field maps to a path in the management API request/response body
- ``ForceNew``  - changing the field replaces the resource instead of updating it
- ``Sensitive`` - field value is write-only remotely and masked in output

Helper functions introspect these markers at runtime to automate request body
building, response attribute extraction, replacement detection and masking.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

M = TypeVar("M")


# ── Marker dataclasses ──────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ApiParam:
    """Field maps to a path in the API body.

    ``path`` is dot-separated, e.g. ``"properties.datasource.properties.server"``.
    ``readable=False`` marks values the API accepts but never returns.
    """

    path: str
    readable: bool = True


@dataclass(frozen=True, slots=True)
class ForceNew:
    """Changing this field requires destroying and re-creating the resource."""


@dataclass(frozen=True, slots=True)
class Sensitive:
    """Field holds a secret."""


# ── Shared introspection primitives ─────────────────────────────────


def _find_marker(field_info: FieldInfo, marker_type: type[M]) -> M | None:
    """Return the first marker of *marker_type* on a field, or ``None``."""
    return next((m for m in field_info.metadata if isinstance(m, marker_type)), None)


def _iter_marked_fields(
    model_or_cls: Any,
    marker_type: type[M],
) -> list[tuple[str, FieldInfo, M]]:
    """Return ``(field_name, field_info, marker)`` for every field carrying *marker_type*."""
    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    return [
        (name, fi, marker)
        for name, fi in cls.model_fields.items()
        if (marker := _find_marker(fi, marker_type)) is not None
    ]


def _resolve_path(raw: dict[str, Any], path: str, default: Any = None) -> Any:
    """Resolve a dot-separated path in a nested dict."""
    current: Any = raw
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return default
        current = current[segment]
    return current


def _assign_path(raw: dict[str, Any], path: str, value: Any) -> None:
    """Set a dot-separated path in a nested dict, creating parents."""
    *parents, leaf = path.split(".")
    current = raw
    for segment in parents:
        current = current.setdefault(segment, {})
    current[leaf] = value


# ── Public helpers ──────────────────────────────────────────────────


def build_api_body(resource: Any, *, base: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a nested API body from ``ApiParam`` fields.

    Fields whose value is ``None`` are omitted. *base* supplies constant parts
    of the body (e.g. type discriminators) and is deep-merged under the fields.
    """
    body: dict[str, Any] = {}
    for path, value in _flatten(base or {}):
        _assign_path(body, path, value)
    for name, _, marker in _iter_marked_fields(resource, ApiParam):
        value = getattr(resource, name)
        if value is not None:
            _assign_path(body, marker.path, value)
    return body


def _flatten(raw: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    items: list[tuple[str, Any]] = []
    for key, value in raw.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and value:
            items.extend(_flatten(value, path))
        else:
            items.append((path, value))
    return items


def extract_api_attrs(resource_cls: type, raw: dict[str, Any]) -> dict[str, Any]:
    """Extract model attrs from an API response via readable ``ApiParam`` markers.

    Paths absent from the response map to ``None``.
    """
    return {
        name: _resolve_path(raw, marker.path)
        for name, _, marker in _iter_marked_fields(resource_cls, ApiParam)
        if marker.readable
    }


def collect_force_new_fields(resource_or_cls: Any) -> set[str]:
    """Names of fields that force replacement when changed."""
    return {name for name, _, _ in _iter_marked_fields(resource_or_cls, ForceNew)}


def collect_sensitive_fields(resource_or_cls: Any) -> set[str]:
    """Names of fields holding secrets."""
    return {name for name, _, _ in _iter_marked_fields(resource_or_cls, Sensitive)}
