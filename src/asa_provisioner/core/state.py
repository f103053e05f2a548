"""The state file: what the provisioner last saw of every input it manages."""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
import os
import tempfile
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

# State may hold the SQL password.
_STATE_FILE_MODE = 0o600


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _sha256_of(obj: Any) -> str:
    payload = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_attributes_hash(attrs: Mapping[str, Any]) -> str:
    return _sha256_of(dict(attrs))


class ResourceInstance(BaseModel):
    """One managed input as recorded in state.

    Attributes:
        address: Unique resource address, "<type>.<resource_group>.<job>.<name>"
        resource_type: Type of the resource
        name: Input name (e.g., "in1")
        id: ARM resource ID; empty until the input has been created
        attributes: Last observed attribute values
        attributes_hash: SHA256 of ``attributes``
    """

    address: str
    resource_type: str
    name: str
    id: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)
    attributes_hash: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def observe(self, attrs: dict[str, Any]) -> bool:
        """Record freshly read attributes. Returns False if nothing changed."""
        new_hash = compute_attributes_hash(attrs)
        if attrs == self.attributes and new_hash == self.attributes_hash:
            return False
        self.attributes = attrs
        self.attributes_hash = new_hash
        self.updated_at = _utcnow()
        return True


class State(BaseModel):
    """Versioned record of managed inputs for one subscription.

    ``serial`` goes up on every write; ``lineage`` is fixed when the file is
    first created. Together with the digest they let apply detect a plan made
    against some other state.
    """

    version: int = 1
    subscription_id: str
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: dict[str, ResourceInstance] = Field(default_factory=dict)

    def save(self, path: Path) -> None:
        """Atomically replace ``path``, keeping the previous file as ``<path>.backup``."""
        path.parent.mkdir(parents=True, exist_ok=True)

        with contextlib.suppress(FileNotFoundError):
            Path(f"{path}.backup").write_bytes(path.read_bytes())

        content = json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, _STATE_FILE_MODE)
            tmp_path.replace(path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()
        logger.debug("State saved: serial=%d path=%s", self.serial, path)

    def commit(self, path: Path) -> str:
        """Bump ``serial``, save, and return the digest of what was written."""
        self.serial += 1
        self.save(path)
        return compute_state_digest(self)

    @classmethod
    def load(cls, path: Path) -> State:
        state = cls.model_validate_json(path.read_text(encoding="utf-8"))
        logger.debug("State loaded from %s", path)
        return state

    @classmethod
    def load_or_create(cls, path: Path, subscription_id: str) -> State:
        if path.exists():
            return cls.load(path)
        logger.debug("Created new state for subscription %s", subscription_id)
        return cls(subscription_id=subscription_id)


def compute_state_digest(state: State) -> str:
    """Digest of everything in ``state`` except timestamps."""
    return _sha256_of(
        {
            "version": state.version,
            "subscription_id": state.subscription_id,
            "lineage": state.lineage,
            "serial": state.serial,
            "resources": [
                {
                    "address": address,
                    "resource_type": inst.resource_type,
                    "name": inst.name,
                    "id": inst.id,
                    "attributes_hash": inst.attributes_hash,
                }
                for address, inst in sorted(state.resources.items())
            ],
        }
    )
