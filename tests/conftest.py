"""Pytest configuration and fixtures for datamanager tests."""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Dict, List, Optional

import httpx
import pytest

from datamanager.core.errors import TransportError
from datamanager.core.fields import Field, PageResult

GATEWAY = "http://test/api"


def make_records(total: int) -> List[Dict[str, Any]]:
    return [
        {
            "id": i,
            "data": {"text": f"task {i}"},
            "total_completions": i % 3,
            "completed_at": None,
        }
        for i in range(1, total + 1)
    ]


FIELDS = [
    Field("id", "ID", "Number"),
    Field("data", "Data", "Object"),
    Field("total_completions", "Completions", "Number"),
    Field("completed_at", "Completed", "Datetime"),
    Field("secret", "Secret", hidden=True),
    Field("meta", "Meta", sortable=False),
]


class FakeBackend:
    """In-memory page source.

    ``load`` matches the DataStore loader signature and ``fetch_page`` the
    View page-source protocol. With ``gated=True`` every request waits on
    ``gate`` so tests can observe the in-flight state.
    """

    def __init__(self, total: int, *, gated: bool = False, fail_pages: tuple = ()) -> None:
        self.records = make_records(total)
        self.calls: List[Dict[str, Any]] = []
        self.fail_pages = set(fail_pages)
        self.gate: Optional[asyncio.Event] = asyncio.Event() if gated else None
        self.total_override: Optional[int] = None

    async def load(self, page: int, page_size: int, context: Any = None) -> PageResult:
        self.calls.append({"page": page, "page_size": page_size, "context": dict(context or {})})
        return await self._serve(page, page_size)

    async def fetch_page(self, *, tab_id, page, page_size, ordering=None, filters=None) -> PageResult:
        self.calls.append(
            {"tab_id": tab_id, "page": page, "page_size": page_size, "ordering": ordering, "filters": filters}
        )
        return await self._serve(page, page_size)

    async def _serve(self, page: int, page_size: int) -> PageResult:
        if self.gate is not None:
            await self.gate.wait()
        if page in self.fail_pages:
            raise TransportError("backend unavailable", endpoint="tasks", status=503)
        start = (page - 1) * page_size
        records = [dict(r) for r in self.records[start : start + page_size]]
        total = len(self.records) if self.total_override is None else self.total_override
        return PageResult(records=records, total=total)


class FakeHTTPBackend:
    """httpx.MockTransport serving the default endpoint layout under ``/api``."""

    def __init__(self, total: int = 45) -> None:
        self.records = make_records(total)
        self.requests: List[httpx.Request] = []
        self.failing: set = set()
        self.tabs: List[Dict[str, Any]] = [
            {"id": 1, "title": "Default", "type": "list"},
            {
                "id": 2,
                "title": "Done",
                "type": "grid",
                "ordering": ["-id"],
                "filters": {"items": [{"filter": "completed_at", "operator": "empty", "value": False}]},
                "hiddenColumns": {"explore": ["meta"]},
            },
        ]
        self.columns: List[Dict[str, Any]] = [
            {"id": "id", "title": "ID", "type": "Number"},
            {"id": "data", "title": "Data", "type": "Object"},
            {"id": "total_completions", "title": "Completions", "type": "Number"},
            {"id": "completed_at", "title": "Completed", "type": "Datetime"},
            {"id": "secret", "title": "Secret", "hidden": True},
            {"id": "meta", "title": "Meta", "sortable": False},
        ]
        self.transport = httpx.MockTransport(self.handler)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len("/api"):]
        if path in self.failing:
            return httpx.Response(500, json={"detail": "boom"})

        if path == "/project":
            return httpx.Response(200, json={"id": 1, "title": "Demo", "task_count": len(self.records)})
        if path == "/project/columns":
            return httpx.Response(200, json={"columns": self.columns})
        if path == "/project/tabs":
            return httpx.Response(200, json={"tabs": self.tabs})
        if path == "/project/next":
            return httpx.Response(200, json=self.records[0] if self.records else None)

        match = re.fullmatch(r"/project/tabs/(\w+)/tasks", path)
        if match and request.method == "GET":
            page = int(request.url.params.get("page", 1))
            page_size = int(request.url.params.get("page_size", 30))
            start = (page - 1) * page_size
            return httpx.Response(
                200, json={"tasks": self.records[start : start + page_size], "total": len(self.records)}
            )

        match = re.fullmatch(r"/project/tabs/(\w+)/actions", path)
        if match and request.method == "POST":
            body = json.loads(request.content or b"{}")
            return httpx.Response(200, json={"processed": len(body["selectedItems"]["included"])})

        match = re.fullmatch(r"/tasks/(\d+)", path)
        if match:
            task_id = int(match.group(1))
            return httpx.Response(
                200,
                json={
                    "id": task_id,
                    "data": {"text": f"task {task_id} (fresh)"},
                    "annotations": [{"id": 100 + task_id}, {"id": 200 + task_id}],
                },
            )
        return httpx.Response(404)


@pytest.fixture
def backend() -> FakeBackend:
    """45 records, served immediately."""
    return FakeBackend(45)


@pytest.fixture
def gated_backend() -> FakeBackend:
    """45 records; requests wait until ``backend.gate.set()``."""
    return FakeBackend(45, gated=True)


@pytest.fixture
def http_backend() -> FakeHTTPBackend:
    return FakeHTTPBackend(45)


@pytest.fixture
def make_backend():
    """Factory for FakeBackend with custom size/failures."""
    return FakeBackend


@pytest.fixture
def fields() -> List[Field]:
    return list(FIELDS)
