"""Backend API client (httpx) with named endpoints and optional mocks.

Endpoints are declared as ``name -> "[METHOD:]/path/{param}"``. Path
placeholders are filled from the call params, the remaining params plus the
shared params (e.g. ``project``) are sent as the query string, and ``body`` is
sent as JSON.

Every failure at the network boundary (connection error, HTTP status >= 400,
undecodable body) is raised as TransportError; the DataStore converts it into
observable state.
"""

from __future__ import annotations

import inspect
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import httpx

from datamanager.core.errors import ConfigurationError, TransportError
from datamanager.core.fields import PageResult
from datamanager.core.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_GATEWAY: str = "http://localhost:8080/api"
DEFAULT_TIMEOUT_S: float = 30.0

DEFAULT_ENDPOINTS: Dict[str, str] = {
    "project": "/project",
    "columns": "/project/columns",
    "tabs": "/project/tabs",
    "tasks": "/project/tabs/{tabID}/tasks",
    "task": "/tasks/{taskID}",
    "nextTask": "/project/next",
    "annotations": "/tasks/{taskID}/annotations",
    "actions": "/project/actions",
    "invokeAction": "POST:/project/tabs/{tabID}/actions",
}

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

# mock(params, body) -> JSON-like value (or awaitable of it)
MockHandler = Callable[[Dict[str, Any], Any], Any]


@dataclass
class APIConfig:
    """Connection parameters for APIProxy.

    Attributes:
        gateway: Base URL all endpoint paths are relative to.
        endpoints: Endpoint name -> ``"[METHOD:]/path"`` template.
        mock_disabled: When False, endpoints with an entry in ``mocks`` are served locally.
        common_headers: Headers sent with every request.
        shared_params: Query params sent with every request (``project`` etc.).
        mocks: Endpoint name -> mock handler.
        timeout: Request timeout in seconds.
    """

    gateway: str = DEFAULT_GATEWAY
    endpoints: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    mock_disabled: bool = True
    common_headers: Dict[str, str] = field(default_factory=dict)
    shared_params: Dict[str, Any] = field(default_factory=dict)
    mocks: Dict[str, MockHandler] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT_S


def parse_endpoint(spec: str) -> Tuple[str, str]:
    """Split ``"POST:/path"`` into ``("POST", "/path")``; default method is GET."""
    method, sep, path = spec.partition(":")
    if sep and method.isalpha() and method.upper() == method:
        return method, path
    return "GET", spec


def fill_path(template: str, params: Dict[str, Any]) -> str:
    """Substitute ``{name}`` placeholders, consuming the used params."""

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key not in params or params[key] is None:
            raise ConfigurationError(f"Missing path parameter {key!r} for {template!r}")
        return str(params.pop(key))

    return _PLACEHOLDER.sub(_sub, template)


class APIProxy:
    """Async client for the data manager backend.

    Args:
        config: APIConfig with gateway, endpoints and shared params.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(self, config: APIConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def uses_mocks(self) -> bool:
        return not self.config.mock_disabled and bool(self.config.mocks)

    def has_endpoint(self, name: str) -> bool:
        return name in self.config.endpoints

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.gateway,
                headers=dict(self.config.common_headers or {}),
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def call(self, name: str, params: Optional[Mapping[str, Any]] = None, body: Any = None) -> Any:
        """Call endpoint ``name`` and return the decoded JSON body (None if empty).

        Raises:
            ConfigurationError: Unknown endpoint or missing path parameter.
            TransportError: Network failure, HTTP error status, or invalid JSON.
        """
        spec = self.config.endpoints.get(name)
        if spec is None:
            raise ConfigurationError(f"Unknown API endpoint {name!r}")
        method, template = parse_endpoint(spec)

        remaining = dict(params or {})
        path = fill_path(template, remaining)
        query = {k: v for k, v in {**self.config.shared_params, **remaining}.items() if v is not None}

        if self.uses_mocks and name in self.config.mocks:
            logger.debug(f"[api] mock {name} params={query}")
            result = self.config.mocks[name](query, body)
            if inspect.isawaitable(result):
                result = await result
            return result

        logger.debug(f"[api] {method} {path} params={query}")
        try:
            response = await self._get_client().request(method, path, params=query, json=body)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc!r}", endpoint=name) from exc

        if response.status_code >= 400:
            raise TransportError(f"{method} {path} returned an error", endpoint=name, status=response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {path} returned invalid JSON", endpoint=name, status=response.status_code) from exc

    async def fetch_page(
        self,
        *,
        tab_id: Any,
        page: int,
        page_size: int,
        ordering: Optional[str] = None,
        filters: Optional[List[dict]] = None,
    ) -> PageResult:
        """Fetch one page of records of a tab.

        Raises:
            TransportError: The request failed or the payload is not a
                ``{"tasks": [...], "total": int}`` page.
        """
        params: Dict[str, Any] = {"tabID": tab_id, "page": page, "page_size": page_size}
        if ordering:
            params["ordering"] = ordering
        if filters:
            params["filters"] = json.dumps(filters)

        data = await self.call("tasks", params)
        if not isinstance(data, Mapping):
            raise TransportError("unexpected page payload", endpoint="tasks")
        records = data.get("tasks", data.get("items", []))
        if not isinstance(records, list) or not all(isinstance(r, Mapping) for r in records):
            raise TransportError("unexpected page payload: records are not a list of objects", endpoint="tasks")
        total = data.get("total", len(records))
        if isinstance(total, bool):
            raise TransportError(f"unexpected page payload: total={total!r}", endpoint="tasks")
        try:
            total = int(total)
        except (TypeError, ValueError) as exc:
            raise TransportError(f"unexpected page payload: total={total!r}", endpoint="tasks") from exc
        return PageResult(records=[dict(r) for r in records], total=total)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
