"""Thin client for the Stream Analytics inputs management API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import requests

if TYPE_CHECKING:
    from asa_provisioner.core.resource_id import StreamInputId

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://management.azure.com"
DEFAULT_API_VERSION = "2020-03-01"


class ApiError(Exception):
    """A failed management API call.

    ``status_code`` is ``None`` when no HTTP response was received.
    """

    def __init__(self, message: str, *, status_code: int | None = None, code: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        prefix = f"{self.status_code}"
        if self.code:
            prefix += f" {self.code}"
        return f"{prefix}: {self.message}"


class ApiTimeoutError(ApiError):
    """The call did not complete within its deadline."""


def _error_from_response(response: requests.Response) -> ApiError:
    code = ""
    message = response.reason or "request failed"
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        code = payload["error"].get("code", "") or ""
        message = payload["error"].get("message", "") or message
    return ApiError(message, status_code=response.status_code, code=code)


class InputsClient:
    """CRUD calls for ``Microsoft.StreamAnalytics/streamingjobs/inputs``.

    Every call takes a ``timeout`` in seconds; exceeding it raises
    ``ApiTimeoutError``. Non-2xx responses raise ``ApiError``.
    """

    def __init__(
        self,
        access_token: str,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        api_version: str = DEFAULT_API_VERSION,
        session: requests.Session | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._api_version = api_version
        self._session = session or requests.Session()
        self._session.headers["Authorization"] = f"Bearer {access_token}"
        self._session.headers["Content-Type"] = "application/json"

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def _url(self, resource_id: StreamInputId) -> str:
        # Each segment is encoded on its own so names cannot alter the path or query.
        path = "".join(f"/{quote(segment, safe='')}" for segment in resource_id.path_segments())
        return f"{self._endpoint}{path}"

    def _request(
        self,
        method: str,
        resource_id: StreamInputId,
        *,
        timeout: float | None,
        body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        logger.debug("%s %s", method, resource_id.id())
        try:
            response = self._session.request(
                method,
                self._url(resource_id),
                params={"api-version": self._api_version},
                json=body,
                headers=headers,
                timeout=timeout,
            )
        except requests.Timeout as exc:
            raise ApiTimeoutError(f"{method} timed out after {timeout}s") from exc
        except requests.RequestException as exc:
            raise ApiError(f"{method} failed: {exc}") from exc

        if not response.ok:
            raise _error_from_response(response)
        if not response.content:
            return {}
        return response.json()

    def get(self, resource_id: StreamInputId, *, timeout: float | None = None) -> dict[str, Any]:
        """Fetch an input. Raises ``ApiError`` with ``not_found`` on 404."""
        return self._request("GET", resource_id, timeout=timeout)

    def create_or_replace(
        self,
        resource_id: StreamInputId,
        body: dict[str, Any],
        *,
        timeout: float | None = None,
        create_only: bool = False,
    ) -> dict[str, Any]:
        """Create an input or replace an existing one (``PUT``).

        With ``create_only`` the request carries ``If-None-Match: *``, so the
        service answers 412 instead of overwriting an input that already exists.
        """
        headers = {"If-None-Match": "*"} if create_only else {}
        return self._request("PUT", resource_id, timeout=timeout, body=body, headers=headers)

    def update(
        self,
        resource_id: StreamInputId,
        body: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Patch an existing input (``PATCH``)."""
        return self._request("PATCH", resource_id, timeout=timeout, body=body)

    def delete(self, resource_id: StreamInputId, *, timeout: float | None = None) -> None:
        """Delete an input. Raises ``ApiError`` with ``not_found`` on 404."""
        self._request("DELETE", resource_id, timeout=timeout)
