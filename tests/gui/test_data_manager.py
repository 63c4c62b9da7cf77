"""Tests for the DataManager lifecycle, events, registries and editor flow.

All tests run headless (no root element): the AppStore is built against
FakeHTTPBackend through httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from datamanager.core.app_store import AppStore
from datamanager.core.errors import ConfigurationError, DataManagerError, DuplicateKeyError, TransportError
from datamanager.gui.data_manager import DataManager, LifecycleState
from datamanager.gui.events import MODE_CHANGED, READY


async def _ready(options, http_backend, **kwargs) -> DataManager:
    dm = DataManager(options, transport=http_backend.transport, autostart=False, **kwargs)
    await dm.init_app()
    return dm


# -----------------------------
# Lifecycle
# -----------------------------
def test_construction_without_loop_does_not_start(dm_options, http_backend) -> None:
    dm = DataManager(dm_options, transport=http_backend.transport)

    assert dm.state == LifecycleState.UNINITIALIZED
    assert dm.store is None
    assert http_backend.requests == []


@pytest.mark.asyncio
async def test_init_app_builds_store_and_fires_ready_once(dm_options, http_backend) -> None:
    dm = DataManager(dm_options, transport=http_backend.transport, autostart=False)
    ready = MagicMock()
    dm.on(READY, ready)

    store = await dm.init_app()

    assert isinstance(store, AppStore)
    assert dm.store is store
    assert dm.state == LifecycleState.READY
    ready.assert_called_once_with(dm)
    assert len(store.data_store.items) == 20
    await dm.aclose()


@pytest.mark.asyncio
async def test_autostart_schedules_init_on_running_loop(dm_options, http_backend) -> None:
    dm = DataManager(dm_options, transport=http_backend.transport)
    assert dm.state == LifecycleState.UNINITIALIZED

    await dm.wait_ready()

    assert dm.state == LifecycleState.READY
    assert dm.store is not None
    await dm.aclose()


@pytest.mark.asyncio
async def test_wait_ready_runs_init_when_nothing_scheduled(dm_options, http_backend) -> None:
    dm = DataManager(dm_options, transport=http_backend.transport, autostart=False)
    assert await dm.wait_ready() is dm
    assert dm.state == LifecycleState.READY
    await dm.aclose()


@pytest.mark.asyncio
async def test_init_failure_resets_state_and_propagates(dm_options, http_backend) -> None:
    http_backend.failing.add("/project")
    dm = DataManager(dm_options, transport=http_backend.transport, autostart=False)
    ready = MagicMock()
    dm.on(READY, ready)

    with pytest.raises(TransportError) as excinfo:
        await dm.init_app()

    assert excinfo.value.status == 500
    assert dm.state == LifecycleState.UNINITIALIZED
    assert dm.store is None
    ready.assert_not_called()
    await dm.aclose()


@pytest.mark.asyncio
async def test_first_page_failure_is_observable_not_fatal(dm_options, http_backend) -> None:
    http_backend.failing.add("/project/tabs/1/tasks")

    dm = await _ready(dm_options, http_backend)

    assert dm.state == LifecycleState.READY
    assert dm.store.data_store.error is not None
    assert dm.store.data_store.items == []
    await dm.aclose()


@pytest.mark.asyncio
async def test_reload_fires_ready_again_and_keeps_handlers(dm_options, http_backend) -> None:
    dm = DataManager(dm_options, transport=http_backend.transport, autostart=False)
    ready = MagicMock()
    dm.on(READY, ready)
    await dm.init_app()
    first_store = dm.store

    await dm.reload()

    assert ready.call_count == 2
    assert dm.state == LifecycleState.READY
    assert dm.store is not first_store
    assert first_store.destroyed is True
    await dm.aclose()


@pytest.mark.asyncio
async def test_destroy_detaches_handlers(dm_options, http_backend) -> None:
    dm = await _ready(dm_options, http_backend)
    ready = MagicMock()
    dm.on(READY, ready)

    dm.destroy()
    assert dm.state == LifecycleState.DESTROYED
    assert dm.store is None
    assert dm.has_handler(READY) is False

    await dm.init_app()
    ready.assert_not_called()
    await dm.aclose()


@pytest.mark.asyncio
async def test_destroy_keep_callbacks(dm_options, http_backend) -> None:
    dm = await _ready(dm_options, http_backend)
    dm.on(READY, MagicMock())

    dm.destroy(detach_callbacks=False)

    assert dm.has_handler(READY) is True
    await dm.aclose()


@pytest.mark.asyncio
async def test_destroy_clears_root_and_cancels_pending_init(dm_options, http_backend) -> None:
    root = SimpleNamespace(props={}, clear=MagicMock())
    dm = DataManager({**dm_options, "root": root}, transport=http_backend.transport)
    pending = dm._init_task
    assert pending is not None

    dm.destroy()
    with pytest.raises(asyncio.CancelledError):
        await pending

    assert pending.cancelled()
    assert http_backend.requests == []
    root.clear.assert_called_once_with()
    await dm.aclose()


def test_require_store_before_init(dm_options) -> None:
    dm = DataManager(dm_options, autostart=False)
    with pytest.raises(DataManagerError):
        dm._require_store()


# -----------------------------
# Configuration
# -----------------------------
def test_project_id_from_root_props() -> None:
    root = SimpleNamespace(props={"data-project-id": 7}, clear=MagicMock())
    dm = DataManager({"root": root}, autostart=False)

    assert dm.project_id == 7
    assert dm.api.config.shared_params["project"] == 7


def test_api_config_merges_endpoints_and_shared_params(dm_options) -> None:
    dm = DataManager(
        {
            **dm_options,
            "apiEndpoints": {"nextTask": "/custom/next"},
            "apiSharedParams": {"token": "abc"},
            "apiHeaders": {"X-Test": "1"},
        },
        autostart=False,
    )
    config = dm.api_config()

    assert config.gateway == "http://test/api"
    assert config.endpoints["nextTask"] == "/custom/next"
    assert config.endpoints["project"] == "/project"
    assert config.shared_params == {"project": 1, "token": "abc"}
    assert config.common_headers == {"X-Test": "1"}


def test_interface_enabled_before_init_uses_config(dm_options) -> None:
    dm = DataManager({**dm_options, "interfaces": {"import": False}}, autostart=False)
    assert dm.interface_enabled("tabs") is True
    assert dm.interface_enabled("import") is False
    assert dm.interface_enabled("nonexistent") is False


def test_invalid_mode_rejected_at_construction() -> None:
    with pytest.raises(ConfigurationError):
        DataManager({"mode": "reviewing"}, autostart=False)


# -----------------------------
# Mode
# -----------------------------
@pytest.mark.asyncio
async def test_set_mode_fires_only_on_change(dm_options, http_backend) -> None:
    dm = await _ready(dm_options, http_backend)
    changed = MagicMock()
    dm.on(MODE_CHANGED, changed)

    dm.set_mode("explorer")
    changed.assert_not_called()
    await dm.store.drain()
    assert len(dm.store.current_view.data_store.items) == 20

    dm.set_mode("labelstream")
    changed.assert_called_once_with("labelstream")
    assert dm.store.mode == "labelstream"
    await dm.store.drain()
    assert dm.store.current_view.id == "labelstream"
    assert len(dm.store.current_view.data_store.items) == 20
    assert dm.is_label_stream is True
    assert dm.is_labeling is True

    with pytest.raises(ConfigurationError):
        dm.set_mode("bogus")
    assert dm.mode == "labelstream"
    await dm.aclose()


@pytest.mark.asyncio
async def test_started_in_labelstream_populates_explorer_after_switch(dm_options, http_backend) -> None:
    dm = await _ready({**dm_options, "mode": "labelstream"}, http_backend)
    assert len(dm.store.current_view.data_store.items) == 20
    tab = dm.store.views[1]
    assert tab.data_store.items == []

    dm.set_mode("explorer")
    await dm.store.drain()

    assert dm.store.current_view is tab
    assert len(tab.data_store.items) == 20
    assert tab.data_store.loading is False
    await dm.aclose()


def test_set_mode_before_init(dm_options) -> None:
    dm = DataManager(dm_options, autostart=False)
    changed = MagicMock()
    dm.on(MODE_CHANGED, changed)

    dm.set_mode("labelstream")

    changed.assert_called_once_with("labelstream")
    assert dm.is_labeling is True


# -----------------------------
# Actions
# -----------------------------
def test_add_action_requires_id(dm_options) -> None:
    dm = DataManager(dm_options, autostart=False)
    with pytest.raises(ConfigurationError):
        dm.add_action({"id": None, "title": "x"}, lambda *a: None)


def test_get_action_returns_callback(dm_options) -> None:
    dm = DataManager(dm_options, autostart=False)

    def callback(selected, data_manager):
        return selected

    dm.add_action({"id": "x"}, callback)

    assert dm.get_action("x") is callback
    assert dm.get_action("y") is None
    with pytest.raises(DuplicateKeyError):
        dm.add_action({"id": "x"}, callback)


@pytest.mark.asyncio
async def test_actions_installed_on_init_and_reload(dm_options, http_backend) -> None:
    dm = DataManager(dm_options, transport=http_backend.transport, autostart=False)
    dm.add_action({"id": "export", "title": "Export", "order": 2}, lambda *a: None)
    dm.add_action({"id": "delete", "title": "Delete", "order": 1}, lambda *a: None)

    await dm.init_app()
    assert [a.id for a in dm.store.actions] == ["delete", "export"]

    await dm.reload()
    assert [a.id for a in dm.store.actions] == ["delete", "export"]

    dm.remove_action("export")
    assert [a.id for a in dm.store.actions] == ["delete"]
    await dm.aclose()


@pytest.mark.asyncio
async def test_invoke_host_action_receives_selection(dm_options, http_backend) -> None:
    dm = await _ready(dm_options, http_backend)
    callback = AsyncMock(return_value="done")
    dm.add_action({"id": "tag"}, callback)
    view = dm.store.current_view
    view.toggle_selected(2)
    view.toggle_selected(5)

    assert await dm.invoke_action("tag") == "done"

    callback.assert_awaited_once_with([2, 5], dm)
    await dm.aclose()


@pytest.mark.asyncio
async def test_invoke_backend_action_posts_selection_and_reloads(dm_options, http_backend) -> None:
    dm = await _ready(dm_options, http_backend)
    view = dm.store.current_view
    view.toggle_selected(1)

    result = await dm.invoke_action("delete_tasks")

    assert result == {"processed": 1}
    assert "/api/project/tabs/1/actions" in http_backend.paths()
    # reload fetched page 1 again
    assert http_backend.paths().count("/api/project/tabs/1/tasks") == 2
    await dm.aclose()


# -----------------------------
# Instruments
# -----------------------------
def test_register_reserved_instrument_is_skipped(dm_options, caplog) -> None:
    dm = DataManager(dm_options, autostart=False)
    initializer = MagicMock()

    with caplog.at_level(logging.WARNING):
        assert dm.register_instrument("refresh", initializer) is False

    initializer.assert_not_called()
    assert "Can't override native instrument refresh" in caplog.text


def test_configured_instruments_get_no_store(dm_options) -> None:
    seen = []
    dm = DataManager({**dm_options, "instruments": {"probe": lambda ctx: seen.append(ctx) or "probe"}}, autostart=False)

    assert dm.instruments.get("probe") == "probe"
    assert seen[0].store is None
    assert seen[0].data_manager is dm


@pytest.mark.asyncio
async def test_register_instrument_after_init_bumps_store(dm_options, http_backend) -> None:
    dm = await _ready(dm_options, http_backend)
    before = dm.store.instruments_version
    seen = []

    assert dm.register_instrument("custom", lambda ctx: seen.append(ctx) or "render") is True

    assert dm.store.instruments_version == before + 1
    assert seen[0].store is dm.store
    assert dm.instruments.resolve("custom") == "render"
    await dm.aclose()


# -----------------------------
# Editor
# -----------------------------
@pytest.mark.asyncio
async def test_init_lsf_is_idempotent(dm_options, http_backend, editor_factory) -> None:
    dm = await _ready({**dm_options, "labelStudio": {"user": "u1"}}, http_backend, editor_factory=editor_factory)

    first = dm.init_lsf("element")
    second = dm.init_lsf("other")

    assert first is second
    assert len(editor_factory.instances) == 1
    assert first.element == "element"
    assert first.options == {"user": "u1"}
    await dm.aclose()


@pytest.mark.asyncio
async def test_start_labeling_loads_selected_task(dm_options, http_backend, editor_factory) -> None:
    dm = await _ready(dm_options, http_backend, editor_factory=editor_factory)
    editor = dm.init_lsf(None)
    record = dm.store.data_store.get_item(3)
    record["annotations"] = [{"id": 30}, {"id": 31}]
    dm.store.set_task(record)

    assert await dm.start_labeling() is True
    assert editor.loads == [(3, 31)]

    # already showing task 3
    assert await dm.start_labeling() is False
    assert editor.loads == [(3, 31)]
    await dm.aclose()


@pytest.mark.asyncio
async def test_start_labeling_uses_selected_annotation(dm_options, http_backend, editor_factory) -> None:
    dm = await _ready(dm_options, http_backend, editor_factory=editor_factory)
    editor = dm.init_lsf(None)
    dm.store.set_task(4, annotation_id=99)

    assert await dm.start_labeling() is True
    assert editor.loads == [(4, 99)]
    await dm.aclose()


@pytest.mark.asyncio
async def test_start_labeling_noop_cases(dm_options, http_backend, editor_factory) -> None:
    dm = await _ready(dm_options, http_backend, editor_factory=editor_factory)

    # no editor
    dm.store.set_task(2)
    assert await dm.start_labeling() is False

    # no task
    editor = dm.init_lsf(None)
    dm.store.unset_task()
    assert await dm.start_labeling() is False

    # labelstream advances through the editor itself
    dm.set_mode("labelstream")
    dm.store.set_task(dm.store.views[1].data_store.get_item(2))
    assert await dm.start_labeling() is False
    assert editor.loads == []
    await dm.aclose()


@pytest.mark.asyncio
async def test_open_task_creates_editor_in_reserved_element(dm_options, http_backend, editor_factory) -> None:
    dm = await _ready(dm_options, http_backend, editor_factory=editor_factory)
    dm.editor_element = "editor-column"
    item = dm.store.data_store.get_item(3)

    await dm.open_task(item)

    editor = dm.lsf
    assert editor.element == "editor-column"
    # created bound to the task, so nothing to reload
    assert editor.task["id"] == 3
    assert editor.loads == []
    assert dm.store.data_store.selected_id == 3

    await dm.open_task(dm.store.data_store.get_item(4))
    assert editor.loads == [(4, None)]
    await dm.aclose()


@pytest.mark.asyncio
async def test_open_unknown_task_is_ignored(dm_options, http_backend, editor_factory) -> None:
    dm = await _ready(dm_options, http_backend, editor_factory=editor_factory)
    dm.editor_element = "editor-column"

    await dm.open_task(9999)

    assert dm.lsf is None
    assert dm.store.selected_task is None
    await dm.aclose()


@pytest.mark.asyncio
async def test_destroy_lsf(dm_options, http_backend, editor_factory) -> None:
    dm = await _ready(dm_options, http_backend, editor_factory=editor_factory)
    editor = dm.init_lsf(None)

    dm.destroy_lsf()
    dm.destroy_lsf()

    assert editor.destroyed is True
    assert dm.lsf is None
    await dm.aclose()


# -----------------------------
# API
# -----------------------------
@pytest.mark.asyncio
async def test_api_call_passes_through(dm_options, http_backend) -> None:
    dm = await _ready(dm_options, http_backend)

    task = await dm.api_call("task", {"taskID": 3})

    assert task["data"]["text"] == "task 3 (fresh)"
    request = http_backend.requests[-1]
    assert request.url.path == "/api/tasks/3"
    assert request.url.params["project"] == "1"
    await dm.aclose()


@pytest.mark.asyncio
async def test_api_call_failure_propagates(dm_options, http_backend) -> None:
    dm = await _ready(dm_options, http_backend)
    http_backend.failing.add("/tasks/3")

    with pytest.raises(TransportError):
        await dm.api_call("task", {"taskID": 3})
    await dm.aclose()
