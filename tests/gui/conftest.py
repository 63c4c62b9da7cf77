"""Pytest fixtures for GUI tests (headless: no NiceGUI client needed)."""

from __future__ import annotations

from typing import Any, Dict, Generator, List, Optional

import pytest

from datamanager.gui.bus import BusConfig, EventBus


@pytest.fixture
def bus() -> Generator[EventBus, None, None]:
    """EventBus with tracing off."""
    test_bus = EventBus(owner="test", config=BusConfig(trace=False))
    yield test_bus
    test_bus.clear()


@pytest.fixture
def dm_options() -> Dict[str, Any]:
    """Host option dict for a headless DataManager against FakeHTTPBackend."""
    return {
        "projectId": 1,
        "apiGateway": "http://test/api",
        "pageSize": 20,
    }


class RecordingEditor:
    """Editor double recording load_task calls."""

    instances: List["RecordingEditor"] = []

    def __init__(self, dm, element, *, task=None, annotation=None, is_label_stream=False, **options) -> None:
        self.dm = dm
        self.element = element
        self.task: Optional[dict] = task
        self.annotation_id = annotation.get("id") if annotation else None
        self.is_label_stream = is_label_stream
        self.options = options
        self.loads: List[tuple] = []
        self.destroyed = False
        RecordingEditor.instances.append(self)

    async def load_task(self, task_id, annotation_id=None) -> None:
        self.loads.append((task_id, annotation_id))
        self.task = {"id": task_id}
        self.annotation_id = annotation_id

    def destroy(self) -> None:
        self.destroyed = True


@pytest.fixture
def editor_factory():
    RecordingEditor.instances = []
    return RecordingEditor
