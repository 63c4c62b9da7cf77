"""Data view: the current View rendered as a virtualized table or a card grid.

The view only renders; every decision about fetching further pages goes
through IncrementalTableController. It subscribes to the DataStore and the
View with ``on_changed`` and redraws the affected part.

Lifecycle:
    - UI elements are created in render() (not __init__) so they land in the
      current NiceGUI container
    - detach() drops the subscriptions before the layout replaces the view
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

import pandas as pd
from nicegui import ui

from datamanager.core.data_store import DataStore
from datamanager.core.fields import RECORD_ID_KEY, Record, record_id
from datamanager.core.utils.logging import get_logger
from datamanager.core.view import View, ViewType
from datamanager.gui.client_utils import safe_call
from datamanager.gui.controllers.table_controller import IncrementalTableController

if TYPE_CHECKING:
    from datamanager.gui.data_manager import DataManager

logger = get_logger(__name__)

# field id -> column decoration merged by View.fields_as_columns
CELL_DECORATIONS: Dict[str, Dict[str, Any]] = {
    "total_completions": {"width": 85, "align": "center", "headerClasses": "text-center"},
    "cancelled_completions": {"width": 85, "align": "center", "headerClasses": "text-center"},
    "total_predictions": {"width": 85, "align": "center", "headerClasses": "text-center"},
    "completed_at": {"width": 180},
}

ROW_HEIGHT_PX = 70
# rows ahead of the last rendered row that should already be materialized
PREFETCH_ROWS = 5

NOTHING_FOUND = "Nothing's found."
NO_TASKS = "Before you can start labeling, you need to import tasks."


class DataView:
    """Render one View and forward user interaction to the controller.

    Attributes:
        _dm: Owning DataManager (row clicks and links).
        _view: View being rendered.
        _controller: IncrementalTableController of the view.
        _container: Column holding the current content (created in render()).
        _table: ui.table in list/labeling mode, else None.
        _kind: What is currently drawn: ``spinner``, ``error``, ``empty``,
            ``table`` or ``grid``.
    """

    def __init__(
        self,
        dm: "DataManager",
        view: View,
        *,
        decorations: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> None:
        self._dm = dm
        self._view = view
        self._decorations = dict(CELL_DECORATIONS if decorations is None else decorations)
        self._controller = IncrementalTableController(view, on_row_click=dm.open_task)

        self._container: Optional[ui.column] = None
        self._table: Optional[ui.table] = None
        self._kind: Optional[str] = None

    @property
    def controller(self) -> IncrementalTableController:
        return self._controller

    @property
    def store(self) -> DataStore:
        return self._view.data_store

    def render(self) -> None:
        """Create the content container inside the current NiceGUI container."""
        self._container = None
        self._table = None
        self._kind = None

        self._controller.attach()
        self.store.on_changed(self._on_store_changed)
        self._view.on_changed(self._on_view_changed)

        self._container = ui.column().classes("w-full h-full min-h-0 gap-0")
        self._rebuild()

    def detach(self) -> None:
        self.store.off_changed(self._on_store_changed)
        self._view.off_changed(self._on_view_changed)
        self._controller.detach()

    # -----------------------------
    # Derived state
    # -----------------------------
    def _has_data(self) -> bool:
        store = self._dm.store
        task_count = store.project.get("task_count") if store is not None else None
        if task_count is None:
            return True
        try:
            return int(task_count) > 0
        except (TypeError, ValueError):
            logger.warning(f"ignoring non-numeric task_count {task_count!r}")
            return True

    def _content_kind(self) -> str:
        store = self.store
        is_labeling = self._dm.is_labeling
        if store.total == 0 and not is_labeling and (store.loading or (store.has_next_page and store.error is None)):
            return "spinner"
        if store.error is not None and not store.items:
            return "error"
        if store.total == 0 or not self._has_data():
            return "empty"
        if is_labeling or self._view.type == ViewType.LIST:
            return "table"
        return "grid"

    def _columns(self) -> List[Dict[str, Any]]:
        sortable = self._view.type == ViewType.LIST
        columns = []
        for column in self._view.fields_as_columns(self._decorations):
            col = column.to_table_column()
            col["sortable"] = sortable and column.field.sortable
            if column.field.parent_id:
                col["label"] = f"{column.field.parent_id}: {column.title}"
            columns.append(col)
        return columns

    def _rows(self) -> List[Record]:
        return [dict(item) for item in self.store.items]

    # -----------------------------
    # Rendering
    # -----------------------------
    def _rebuild(self) -> None:
        if self._container is None:
            return
        self._table = None
        self._kind = self._content_kind()
        safe_call(self._container.clear)
        with self._container:
            if self._kind == "spinner":
                with ui.row().classes("w-full justify-center p-8"):
                    ui.spinner(size="lg")
            elif self._kind == "error":
                self._render_error()
            elif self._kind == "empty":
                self._render_empty()
            elif self._kind == "table":
                self._render_table()
            else:
                self._render_grid()

    def _render_error(self) -> None:
        with ui.column().classes("w-full items-center p-8 gap-2"):
            ui.label(str(self.store.error)).classes("text-red-600")
            ui.button("Retry", on_click=self._retry).props("outline")

    def _render_empty(self) -> None:
        has_data = self._has_data()
        with ui.column().classes("w-full h-full items-center justify-center p-8 gap-2"):
            ui.icon("inbox").classes("text-4xl text-gray-400")
            ui.label(NOTHING_FOUND if has_data else NO_TASKS).classes("text-gray-500")
            import_link = self._dm.links.get("import")
            if not has_data and import_link and self._dm.interface_enabled("import"):
                ui.button("Go to import", on_click=lambda: ui.navigate.to(import_link)).props("color=primary")

    def _render_table(self) -> None:
        self._table = (
            ui.table(
                columns=self._columns(),
                rows=self._rows(),
                row_key=RECORD_ID_KEY,
                selection="multiple",
                pagination={"rowsPerPage": 0},
            )
            .classes("w-full h-full")
            .props(f'dense flat virtual-scroll hide-bottom :virtual-scroll-item-size="{ROW_HEIGHT_PX}" :sort-method="rows => rows"')
            .style("max-height: 70vh")
        )
        self._table.on("selection", self._on_select)
        self._table.on("rowClick", self._on_row_click)
        self._table.on("virtual-scroll", self._on_virtual_scroll, ["index", "from", "to", "direction"])
        self._table.on("update:pagination", self._on_pagination)
        self._sync_selection()
        self._sync_loading()

    def _render_grid(self) -> None:
        columns = self._view.fields_as_columns(self._decorations)[:4]
        focused = self._controller.focused_item
        focused_id = record_id(focused) if focused else None
        with ui.scroll_area(on_scroll=self._on_grid_scroll).classes("w-full").style("height: 70vh"):
            with ui.grid(columns=4).classes("w-full gap-2"):
                for item in self.store.items:
                    item_id = record_id(item)
                    card = ui.card().classes("p-2 cursor-pointer")
                    if item_id == focused_id:
                        card.classes("border-2 border-blue-500")
                    with card:
                        with ui.row().classes("w-full items-center justify-between"):
                            ui.checkbox(
                                f"#{item_id}",
                                value=self._view.is_selected(item_id),
                                on_change=lambda _e, i=item_id: self._controller.select_row(i),
                            )
                            ui.button(icon="code", on_click=lambda _e, r=item: self.show_source(r)).props("flat dense round size=sm")
                        for column in columns:
                            ui.label(f"{column.title}: {item.get(column.id, '')}").classes("text-xs truncate")
                    card.on("click", lambda _e, r=item: self._controller.highlight(record_id(r)))
            if self.store.has_next_page:
                ui.button("Load more", on_click=self._controller.load_more).props("flat")

    def show_source(self, record: Mapping[str, Any]) -> None:
        """Show the raw record JSON in a dialog."""
        with ui.dialog() as dialog, ui.card().classes("w-[40rem] max-w-full"):
            ui.code(json.dumps(record, indent=2, default=str), language="json").classes("w-full")
            ui.button("Close", on_click=dialog.close)
        dialog.open()

    # -----------------------------
    # Store / view callbacks
    # -----------------------------
    def _on_store_changed(self, store: DataStore, reason: str) -> None:
        if reason in ("selection", "focus"):
            if self._kind == "grid":
                safe_call(self._rebuild)
            else:
                safe_call(self._sync_selection)
            return
        if reason == "destroyed":
            return
        kind = self._content_kind()
        if kind != self._kind or kind == "grid":
            safe_call(self._rebuild)
        elif kind == "table":
            safe_call(self._sync_rows)

    def _on_view_changed(self, view: View, reason: str) -> None:
        if reason in ("columns", "type"):
            safe_call(self._rebuild)

    def _sync_rows(self) -> None:
        if self._table is None:
            return
        self._table.rows = self._rows()
        self._sync_selection()
        self._sync_loading()

    def _sync_selection(self) -> None:
        if self._table is None:
            return
        self._table.selected = [row for row in self._table.rows if self._view.is_selected(record_id(row))]

    def _sync_loading(self) -> None:
        if self._table is None:
            return
        if self.store.loading:
            self._table.props("loading")
        else:
            self._table.props(remove="loading")

    # -----------------------------
    # UI events
    # -----------------------------
    async def _retry(self) -> None:
        await self.store.fetch({"interaction": "retry"})

    def _on_select(self, event) -> None:
        rows_payload = event.args.get("rows")
        added = event.args.get("added")
        rows = [row for row in (rows_payload if isinstance(rows_payload, list) else []) if isinstance(row, dict)]

        if len(rows) > 1 and len(rows) == len(self.store.items):
            # header checkbox
            if added:
                self._controller.select_all()
            else:
                self._view.clear_selection()
            return
        for row in rows:
            item_id = record_id(row)
            if bool(added) != self._view.is_selected(item_id):
                self._controller.select_row(item_id)
        self._sync_selection()

    async def _on_row_click(self, event) -> None:
        if self._controller.stop_interactions:
            return
        args = event.args if isinstance(event.args, list) else []
        if len(args) < 2 or not isinstance(args[1], dict):
            return
        item = self.store.get_item(record_id(args[1])) or args[1]
        await self._controller.row_click(item)

    async def _on_virtual_scroll(self, event) -> None:
        args = event.args if isinstance(event.args, dict) else {}
        last = args.get("to")
        if last is None:
            return
        await self._controller.ensure_loaded(int(last) + PREFETCH_ROWS)

    async def _on_pagination(self, event) -> None:
        args = event.args if isinstance(event.args, dict) else {}
        sort_by = args.get("sortBy")
        if sort_by is None:
            ordering = self._view.ordering
            if ordering is None:
                return
            sort_by = ordering.field_id
        await self._controller.set_order(str(sort_by))

    async def _on_grid_scroll(self, event) -> None:
        if event.vertical_percentage >= 0.9:
            await self._controller.load_more()

    # -----------------------------
    # Export
    # -----------------------------
    def get_table_as_text(self) -> str:
        """Materialized rows of the visible columns as TSV."""
        columns = [c.id for c in self._view.fields_as_columns()]
        df = pd.DataFrame(self.store.items, columns=[RECORD_ID_KEY] + [c for c in columns if c != RECORD_ID_KEY])
        return df.to_csv(sep="\t", index=False)
