"""View: fields, ordering, filters and selection bound to one DataStore.

A View exclusively owns its DataStore; the store is created with the View and
destroyed with it. Selection is identifier based (never index based), so it
stays valid while pages are appended.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Sequence, Set

from datamanager.core.data_store import DEFAULT_PAGE_SIZE, DataStore
from datamanager.core.errors import ConfigurationError
from datamanager.core.fields import Column, Field, Filter, Ordering, PageResult, record_id
from datamanager.core.utils.logging import get_logger

logger = get_logger(__name__)


class ViewType(str, Enum):
    """Display mode of a View."""

    LIST = "list"
    GRID = "grid"
    LABELSTREAM = "labelstream"


class PageSource(Protocol):
    """Anything that can serve a page of records for a tab (usually APIProxy)."""

    async def fetch_page(
        self,
        *,
        tab_id: Any,
        page: int,
        page_size: int,
        ordering: Optional[str] = None,
        filters: Optional[List[dict]] = None,
    ) -> PageResult: ...


class View:
    """One display tab: a DataStore plus column/ordering/selection configuration.

    Attributes:
        id: View identifier.
        tab_id: Backend tab the pages are fetched for (defaults to ``id``).
        title: Tab title.
        type: ViewType of the tab.
        fields: Ordered, immutable sequence of Field descriptors.
        hidden_columns: Set of hidden Field ids.
        ordering: Current Ordering or None.
        filters: Current column filters.
        data_store: The exclusively owned DataStore.
    """

    def __init__(
        self,
        view_id: Any,
        page_source: PageSource,
        *,
        fields: Sequence[Field] = (),
        view_type: ViewType | str = ViewType.LIST,
        title: str = "",
        hidden_columns: Iterable[str] = (),
        ordering: Optional[Ordering] = None,
        filters: Iterable[Filter] = (),
        page_size: int = DEFAULT_PAGE_SIZE,
        tab_id: Any = None,
    ) -> None:
        self.id = view_id
        self.tab_id = view_id if tab_id is None else tab_id
        self.title = title or str(view_id)
        self.type = ViewType(view_type)
        self.fields: tuple[Field, ...] = tuple(fields)
        self.hidden_columns: Set[str] = set(hidden_columns)
        self.ordering: Optional[Ordering] = ordering
        self.filters: List[Filter] = list(filters)

        self._page_source = page_source
        self._fields_by_id = {f.id: f for f in self.fields}
        self._changed_handlers: List = []

        self.data_store = DataStore(self._load_page, page_size=page_size, name=str(view_id))

    def __repr__(self) -> str:
        return f"View(id={self.id!r}, type={self.type.value}, fields={len(self.fields)}, store={self.data_store!r})"

    async def _load_page(self, page: int, page_size: int, context: Optional[Mapping[str, Any]]) -> PageResult:
        logger.debug(f"[view {self.id}] loading page {page} (context={context})")
        return await self._page_source.fetch_page(
            tab_id=self.tab_id,
            page=page,
            page_size=page_size,
            ordering=self.ordering.as_param() if self.ordering else None,
            filters=[f.as_dict() for f in self.filters] or None,
        )

    # Registration
    def on_changed(self, handler) -> None:
        """Register callback for view configuration changes; called as ``handler(view, reason)``."""
        if handler not in self._changed_handlers:
            self._changed_handlers.append(handler)

    def off_changed(self, handler) -> None:
        try:
            self._changed_handlers.remove(handler)
        except ValueError:
            pass

    def _notify(self, reason: str) -> None:
        for handler in list(self._changed_handlers):
            try:
                handler(self, reason)
            except Exception:
                logger.exception(f"Error in view changed handler (reason={reason})")

    # Selection
    @property
    def selected(self) -> List[Any]:
        """Selected ids, materialized ones first in item order."""
        selected_ids = self.data_store.selected_ids
        ordered = [record_id(r) for r in self.data_store.items if record_id(r) in selected_ids]
        seen = set(ordered)
        return ordered + [i for i in selected_ids if i not in seen]

    def is_selected(self, item_id: Any) -> bool:
        return item_id in self.data_store.selected_ids

    def toggle_selected(self, item_id: Any) -> None:
        """Flip membership of ``item_id`` in the selection.

        Selecting an id that is not materialized is ignored (selection can race
        with row removal); deselecting always succeeds.
        """
        selected_ids = self.data_store.selected_ids
        if item_id in selected_ids:
            selected_ids.discard(item_id)
        elif self.data_store.has_item(item_id):
            selected_ids.add(item_id)
        else:
            logger.debug(f"[view {self.id}] toggle_selected ignored unknown id {item_id!r}")
            return
        self.data_store.notify_selection()

    def select_all(self) -> None:
        """Select every materialized record (not ``total``)."""
        self.data_store.selected_ids = {record_id(r) for r in self.data_store.items}
        self.data_store.notify_selection()

    def clear_selection(self) -> None:
        self.data_store.selected_ids = set()
        self.data_store.notify_selection()

    def reconcile_selection(self) -> Set[Any]:
        """Drop selected ids whose records are no longer materialized.

        Only meaningful after rows were removed; while a reset window is empty
        the selection is kept so it survives re-ordering.

        Returns:
            The ids that were dropped.
        """
        store = self.data_store
        stale = {i for i in store.selected_ids if not store.has_item(i)}
        if stale:
            store.selected_ids -= stale
            logger.debug(f"[view {self.id}] dropped {len(stale)} stale selected ids")
            store.notify_selection()
        return stale

    # Ordering and filters
    async def set_ordering(self, field_id: str) -> None:
        """Sort by ``field_id``; same field flips direction. Refetches from page 1."""
        fld = self._fields_by_id.get(field_id)
        if self._fields_by_id and fld is None:
            raise ConfigurationError(f"Unknown field {field_id!r} for view {self.id!r}")
        if fld is not None and not fld.sortable:
            logger.warning(f"[view {self.id}] field {field_id!r} is not sortable")
            return

        if self.ordering is not None and self.ordering.field_id == field_id:
            self.ordering = self.ordering.flipped()
        else:
            self.ordering = Ordering(field_id)
        logger.info(f"[view {self.id}] ordering -> {self.ordering.as_param()}")
        self._notify("ordering")
        await self.reload()

    async def set_filters(self, filters: Iterable[Filter]) -> None:
        self.filters = list(filters)
        self._notify("filters")
        await self.reload()

    async def reload(self) -> bool:
        """Reset the store and fetch page 1 for the current configuration."""
        self.data_store.reset()
        return await self.data_store.fetch({"interaction": "reload"})

    # Columns
    @property
    def hidden_columns_list(self) -> List[str]:
        return [f.id for f in self.fields if f.id in self.hidden_columns]

    def set_column_hidden(self, field_id: str, hidden: bool) -> None:
        if hidden:
            self.hidden_columns.add(field_id)
        else:
            self.hidden_columns.discard(field_id)
        self._notify("columns")

    def toggle_column(self, field_id: str) -> None:
        self.set_column_hidden(field_id, field_id not in self.hidden_columns)

    def fields_as_columns(self, decorations: Optional[Mapping[str, Mapping[str, Any]]] = None) -> List[Column]:
        """Visible fields in declared order, merged with caller decorations.

        Args:
            decorations: Optional mapping ``field_id -> {"width", "renderer", "style", ...}``.
                Unknown decoration keys end up in ``Column.extra``.
        """
        decorations = decorations or {}
        columns: List[Column] = []
        for fld in self.fields:
            if fld.id in self.hidden_columns:
                continue
            deco = dict(decorations.get(fld.id, {}))
            columns.append(
                Column(
                    field=fld,
                    width=deco.pop("width", None),
                    renderer=deco.pop("renderer", None),
                    style=dict(deco.pop("style", {})),
                    extra=deco,
                )
            )
        return columns

    def set_type(self, view_type: ViewType | str) -> None:
        view_type = ViewType(view_type)
        if self.type == ViewType.LABELSTREAM or view_type == ViewType.LABELSTREAM:
            raise ConfigurationError("labelstream views cannot change type")
        if view_type != self.type:
            self.type = view_type
            self._notify("type")

    def destroy(self) -> None:
        self._changed_handlers.clear()
        self.data_store.destroy()
