"""Top-level layout of one DataManager lifecycle.

Tabs + toolbar on top, the current DataView below, and the editor
container to the right while labeling. The header (tabs + toolbar) and the
data area are rebuilt on AppStore changes; the editor container is created
once so the embedded editor keeps its element across tab and mode switches.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from nicegui import ui

from datamanager.core.app_store import AppStore
from datamanager.core.utils.logging import get_logger
from datamanager.gui.client_utils import safe_call
from datamanager.gui.views.data_view import DataView
from datamanager.gui.views.toolbar_view import ToolbarView

if TYPE_CHECKING:
    from datamanager.gui.data_manager import DataManager

logger = get_logger(__name__)

_HEADER_REASONS = ("view", "mode", "instruments", "actions", "task")
_DATA_REASONS = ("view", "mode")


class DataManagerLayout:
    """Compose tabs, toolbar, data view and editor container.

    Attributes:
        _dm: Owning DataManager.
        _store: AppStore rendered by this layout.
        _header: Container of tabs + toolbar (created in render()).
        _data: Container of the DataView (created in render()).
        _data_view: Current DataView.
    """

    def __init__(self, dm: "DataManager", store: AppStore) -> None:
        self._dm = dm
        self._store = store
        self._header: Optional[ui.column] = None
        self._data: Optional[ui.column] = None
        self._data_view: Optional[DataView] = None

    @property
    def data_view(self) -> Optional[DataView]:
        return self._data_view

    def render(self) -> None:
        with ui.column().classes("w-full h-full gap-0"):
            self._header = ui.column().classes("w-full gap-0")
            with ui.row().classes("w-full flex-nowrap items-start gap-2"):
                self._data = ui.column().classes("flex-grow min-w-0")
                editor = ui.column().classes("w-1/3 min-w-[20rem] p-2 border-l")
                editor.bind_visibility_from(self._store, "is_labeling")
                self._dm.editor_element = editor

        self._store.on_changed(self._on_app_changed)
        self._render_header()
        self._render_data()

    def _render_header(self) -> None:
        if self._header is None:
            return
        safe_call(self._header.clear)
        with self._header:
            if self._store.interface_enabled("tabs") and not self._store.is_label_stream:
                self._render_tabs()
            if self._store.interface_enabled("toolbar"):
                ToolbarView(self._dm.instruments, self._dm.toolbar).render()

    def _render_tabs(self) -> None:
        by_name: Dict[str, Any] = {str(view.id): view.id for view in self._store.tabs}

        async def _on_change(e) -> None:
            view_id = by_name.get(str(e.value))
            if view_id is not None and view_id != self._store.current_tab_id:
                await self._store.select_view(view_id)

        with ui.tabs(value=str(self._store.current_tab_id), on_change=_on_change).classes("w-full").props("dense align=left"):
            for view in self._store.tabs:
                ui.tab(str(view.id), label=view.title)

    def _render_data(self) -> None:
        if self._data is None:
            return
        if self._data_view is not None:
            self._data_view.detach()
        safe_call(self._data.clear)
        with self._data:
            self._data_view = DataView(self._dm, self._store.current_view)
            self._data_view.render()

    def _on_app_changed(self, store: AppStore, reason: str) -> None:
        if reason == "destroyed":
            if self._data_view is not None:
                self._data_view.detach()
            return
        if reason in _HEADER_REASONS:
            safe_call(self._render_header)
        if reason in _DATA_REASONS:
            safe_call(self._render_data)
