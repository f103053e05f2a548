"""Shared fixtures for unit tests."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

import pytest

from asa_provisioner.config import load
from asa_provisioner.core.client import ApiError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from asa_provisioner.config.schema import Config
    from asa_provisioner.core.resource_id import StreamInputId

_ARM_ENV_VARS = (
    "ARM_SUBSCRIPTION_ID",
    "ARM_ACCESS_TOKEN",
    "ARM_ENDPOINT",
    "ARM_API_VERSION",
    "ARM_TIMEOUTS",
    "ASA_LOG",
)


@pytest.fixture(autouse=True)
def _clean_arm_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove ARM_* env vars so unit tests don't leak host config."""
    for var in _ARM_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make


def _merge(target: dict[str, Any], patch: dict[str, Any]) -> None:
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = value


class FakeInputsClient:
    """In-memory stand-in for ``InputsClient``.

    Mirrors the real API: writes drop the password, reads never return it,
    and missing inputs answer 404.
    """

    def __init__(self) -> None:
        self.entities: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.timeouts: list[float | None] = []

    @staticmethod
    def _not_found(rid: StreamInputId) -> ApiError:
        return ApiError(f"{rid.id()} not found", status_code=404, code="NotFound")

    @staticmethod
    def _strip_secrets(entity: dict[str, Any]) -> None:
        props = entity.get("properties", {}).get("datasource", {}).get("properties", {})
        props.pop("password", None)

    def get(self, rid: StreamInputId, *, timeout: float | None = None) -> dict[str, Any]:
        self.calls.append(("get", rid.id()))
        self.timeouts.append(timeout)
        if rid.id() not in self.entities:
            raise self._not_found(rid)
        return copy.deepcopy(self.entities[rid.id()])

    def create_or_replace(
        self,
        rid: StreamInputId,
        body: dict[str, Any],
        *,
        timeout: float | None = None,
        create_only: bool = False,
    ) -> dict[str, Any]:
        self.calls.append(("put", rid.id()))
        self.timeouts.append(timeout)
        if create_only and rid.id() in self.entities:
            raise ApiError("input already exists", status_code=412, code="PreconditionFailed")
        entity = copy.deepcopy(body)
        entity["id"] = rid.id()
        entity["type"] = "Microsoft.StreamAnalytics/streamingjobs/inputs"
        self._strip_secrets(entity)
        self.entities[rid.id()] = entity
        return copy.deepcopy(entity)

    def update(
        self,
        rid: StreamInputId,
        body: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("patch", rid.id()))
        self.timeouts.append(timeout)
        if rid.id() not in self.entities:
            raise self._not_found(rid)
        entity = self.entities[rid.id()]
        _merge(entity, copy.deepcopy(body))
        self._strip_secrets(entity)
        return copy.deepcopy(entity)

    def delete(self, rid: StreamInputId, *, timeout: float | None = None) -> None:
        self.calls.append(("delete", rid.id()))
        self.timeouts.append(timeout)
        if rid.id() not in self.entities:
            raise self._not_found(rid)
        del self.entities[rid.id()]

    def verbs(self) -> list[str]:
        return [verb for verb, _ in self.calls]


@pytest.fixture
def fake_client() -> FakeInputsClient:
    return FakeInputsClient()
