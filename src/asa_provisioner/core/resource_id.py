"""Resource identifiers for Stream Analytics inputs.

An input is addressed by the Azure Resource Manager path::

    /subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.StreamAnalytics
        /streamingjobs/{job}/inputs/{name}

The same string is used as the REST path and as the ``id`` kept in state.
"""

from __future__ import annotations

from dataclasses import dataclass

PROVIDER_NAMESPACE = "Microsoft.StreamAnalytics"

_SEGMENT_KEYS = ("subscriptions", "resourceGroups", "providers", "streamingjobs", "inputs")


class InvalidResourceIdError(ValueError):
    """Raised when a string is not a well-formed stream input ID."""

    def __init__(self, value: str, reason: str) -> None:
        super().__init__(f"Invalid stream input ID {value!r}: {reason}")
        self.value = value
        self.reason = reason


@dataclass(frozen=True, slots=True)
class StreamInputId:
    """Composite key of a Stream Analytics job input."""

    subscription_id: str
    resource_group: str
    job_name: str
    input_name: str

    def __post_init__(self) -> None:
        for field_name in ("subscription_id", "resource_group", "job_name", "input_name"):
            value = getattr(self, field_name)
            if not value or "/" in value:
                raise InvalidResourceIdError(
                    str(value), f"{field_name} must be a non-empty path segment"
                )

    def path_segments(self) -> tuple[str, ...]:
        """Alternating keys and values of the ID path, unencoded."""
        return (
            "subscriptions",
            self.subscription_id,
            "resourceGroups",
            self.resource_group,
            "providers",
            PROVIDER_NAMESPACE,
            "streamingjobs",
            self.job_name,
            "inputs",
            self.input_name,
        )

    def id(self) -> str:
        """Format as an ARM resource ID."""
        return "/" + "/".join(self.path_segments())

    def __str__(self) -> str:
        return (
            f"Stream Input {self.input_name!r} "
            f"(Streaming Job {self.job_name!r} / Resource Group {self.resource_group!r})"
        )

    @classmethod
    def parse(cls, value: str) -> StreamInputId:
        """Parse an ARM resource ID. Raises ``InvalidResourceIdError``."""
        if not isinstance(value, str) or not value.startswith("/"):
            raise InvalidResourceIdError(str(value), "expected a path starting with '/'")

        segments = value[1:].split("/")
        if len(segments) % 2 != 0:
            raise InvalidResourceIdError(value, "expected key/value segment pairs")

        pairs: dict[str, str] = {}
        for key, val in zip(segments[::2], segments[1::2], strict=True):
            if key not in _SEGMENT_KEYS:
                raise InvalidResourceIdError(value, f"unexpected segment {key!r}")
            if key in pairs:
                raise InvalidResourceIdError(value, f"duplicate segment {key!r}")
            if not val:
                raise InvalidResourceIdError(value, f"empty value for segment {key!r}")
            pairs[key] = val

        missing = [k for k in _SEGMENT_KEYS if k not in pairs]
        if missing:
            raise InvalidResourceIdError(value, f"missing segment(s): {', '.join(missing)}")
        if list(pairs) != list(_SEGMENT_KEYS):
            raise InvalidResourceIdError(value, "segments are out of order")
        if pairs["providers"] != PROVIDER_NAMESPACE:
            raise InvalidResourceIdError(
                value, f"expected provider {PROVIDER_NAMESPACE!r}, got {pairs['providers']!r}"
            )

        return cls(
            subscription_id=pairs["subscriptions"],
            resource_group=pairs["resourceGroups"],
            job_name=pairs["streamingjobs"],
            input_name=pairs["inputs"],
        )
