"""Controller between the virtualized table/grid and the current View.

The presentation layer asks ``is_item_loaded(index)`` for every row it is
about to draw and calls ``load_more()`` when a row is missing. ``load_more``
is the only place that triggers ``DataStore.fetch`` from scrolling.

Selection Flow:
    1. User ticks a row checkbox -> DataView calls select_row(id)
    2. View.toggle_selected flips the id in DataStore.selected_ids
    3. DataStore notifies "selection" -> DataView refreshes checkboxes
    4. When rows are removed, the controller reconciles the selection
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Optional

from datamanager.core.data_store import DataStore
from datamanager.core.fields import Record
from datamanager.core.utils.logging import get_logger
from datamanager.core.view import View

logger = get_logger(__name__)

OnRowClick = Callable[[Record], Optional[Awaitable[None]]]


class IncrementalTableController:
    """Decide when to fetch further pages and keep selection consistent.

    Attributes:
        _view: View whose DataStore backs the table.
        _on_row_click: Orchestration callback for opening a record (injected
            by the DataManager).
        _attached: Whether the store subscription is active.
    """

    def __init__(self, view: View, *, on_row_click: Optional[OnRowClick] = None) -> None:
        self._view: View = view
        self._on_row_click = on_row_click
        self._attached: bool = False
        self.attach()

    @property
    def view(self) -> View:
        return self._view

    @property
    def store(self) -> DataStore:
        return self._view.data_store

    def attach(self) -> None:
        if self._attached:
            return
        self.store.on_changed(self._on_store_changed)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        self.store.off_changed(self._on_store_changed)
        self._attached = False

    def _on_store_changed(self, store: DataStore, reason: str) -> None:
        if reason == "removed":
            self._view.reconcile_selection()

    def is_item_loaded(self, index: int) -> bool:
        """True if row ``index`` is materialized or there is nothing left to fetch."""
        store = self.store
        return not store.has_next_page or 0 <= index < len(store.items)

    @property
    def row_count(self) -> int:
        """Rows the virtualizer should allocate: one placeholder while more pages exist."""
        store = self.store
        return len(store.items) + 1 if store.has_next_page else len(store.items)

    @property
    def stop_interactions(self) -> bool:
        return self.store.loading

    async def load_more(self) -> bool:
        """Fetch the next page unless loading or at end of data.

        Returns:
            True if a page was appended.
        """
        store = self.store
        if not store.has_next_page or store.loading:
            return False
        return await store.fetch({"interaction": "scroll"})

    async def ensure_loaded(self, index: int) -> bool:
        """Fetch one more page if ``index`` is not materialized yet."""
        if self.is_item_loaded(index):
            return False
        return await self.load_more()

    @property
    def focused_item(self) -> Optional[Record]:
        store = self.store
        return store.selected if store.selected is not None else store.highlighted

    def select_row(self, item_id: Any) -> None:
        self._view.toggle_selected(item_id)

    def select_all(self) -> None:
        self._view.select_all()

    def highlight(self, item_id: Any) -> None:
        self.store.set_highlighted(item_id)

    async def set_order(self, field_id: str) -> None:
        await self._view.set_ordering(field_id)

    async def row_click(self, item: Record) -> None:
        if self._on_row_click is None:
            return
        result = self._on_row_click(item)
        if inspect.isawaitable(result):
            await result
