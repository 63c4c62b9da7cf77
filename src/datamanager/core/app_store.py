"""Root application state tree: project, views, task focus and toolbar actions.

AppStore owns every View (and through them every DataStore). It is built
by ``create_app`` on each ``DataManager.init_app`` and destroyed wholesale on
reload. Components never climb up to it; the DataManager hands it down.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from datamanager.core.api_client import APIProxy
from datamanager.core.data_store import DEFAULT_PAGE_SIZE
from datamanager.core.errors import ConfigurationError
from datamanager.core.fields import Field, Filter, Ordering, Record, record_id
from datamanager.core.utils.logging import get_logger
from datamanager.core.view import View, ViewType

logger = get_logger(__name__)

MODE_EXPLORER = "explorer"
MODE_LABELSTREAM = "labelstream"
MODES = (MODE_EXPLORER, MODE_LABELSTREAM)

LABELSTREAM_VIEW_ID = "labelstream"
DEFAULT_TAB: Dict[str, Any] = {"id": 0, "title": "Default", "type": "list"}

# handler(store, reason)
AppChangedHandler = Callable[["AppStore", str], None]


def validate_mode(mode: str) -> str:
    if mode not in MODES:
        raise ConfigurationError(f"Invalid mode {mode!r}, expected one of {MODES}")
    return mode


@dataclass
class TableConfig:
    """Per-mode column visibility overrides.

    Keys of both mappings are ``"explore"`` (tab views) and ``"labeling"``
    (the labelstream view). A visible list hides every field not in it; the
    hidden list is applied on top.
    """

    hidden_columns: Dict[str, List[str]] = field(default_factory=dict)
    visible_columns: Dict[str, List[str]] = field(default_factory=dict)

    def hidden_for(self, key: str, fields: Iterable[Field]) -> Set[str]:
        fields = list(fields)
        visible = self.visible_columns.get(key)
        hidden = self.hidden_columns.get(key)
        if visible is None and hidden is None:
            return {f.id for f in fields if f.hidden}
        result: Set[str] = set()
        if visible is not None:
            result |= {f.id for f in fields if f.id not in set(visible)}
        if hidden is not None:
            result |= set(hidden)
        return result


def _parse_ordering(value: Any) -> Optional[Ordering]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if not value:
        return None
    value = str(value)
    if value.startswith("-"):
        return Ordering(value[1:], descending=True)
    return Ordering(value)


def _parse_filters(value: Any) -> List[Filter]:
    items = value.get("items", []) if isinstance(value, Mapping) else (value or [])
    filters: List[Filter] = []
    for item in items:
        if isinstance(item, Mapping) and item.get("filter"):
            filters.append(Filter(str(item["filter"]), str(item.get("operator", "contains")), item.get("value")))
    return filters


def _unwrap_list(data: Any, key: str) -> List[Any]:
    if isinstance(data, Mapping):
        data = data.get(key, [])
    return list(data or [])


class AppStore:
    """Application state shared by every component of one DataManager.

    Attributes:
        api: APIProxy used for all backend calls.
        mode: ``"explorer"`` or ``"labelstream"``.
        project: Project payload from the backend.
        fields: Field descriptors shared by all views.
        views: Tab views keyed by view id (plus the labelstream view).
        selected_task: Record currently opened in the editor, if any.
        selected_annotation: Annotation dict selected for the task, if any.
    """

    def __init__(
        self,
        api: APIProxy,
        *,
        mode: str = MODE_EXPLORER,
        table_config: Optional[TableConfig] = None,
        interfaces: Optional[Mapping[str, bool]] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.api = api
        self.mode = validate_mode(mode)
        self.table_config = table_config or TableConfig()
        self.interfaces: Dict[str, bool] = dict(interfaces or {})
        self.page_size = page_size

        self.project: Dict[str, Any] = {}
        self.fields: List[Field] = []
        self.views: Dict[Any, View] = {}
        self.current_tab_id: Any = None

        self.selected_task: Optional[Record] = None
        self.selected_annotation: Optional[Dict[str, Any]] = None

        self.instruments_version: int = 0
        self.destroyed: bool = False
        self._pending: Set[asyncio.Task] = set()

        self._actions: Dict[str, Any] = {}
        self._changed_handlers: List[AppChangedHandler] = []

    # Registration
    def on_changed(self, handler: AppChangedHandler) -> None:
        """Register callback for app-level changes; called as ``handler(store, reason)``."""
        if handler not in self._changed_handlers:
            self._changed_handlers.append(handler)

    def off_changed(self, handler: AppChangedHandler) -> None:
        try:
            self._changed_handlers.remove(handler)
        except ValueError:
            pass

    def _notify(self, reason: str) -> None:
        for handler in list(self._changed_handlers):
            try:
                handler(self, reason)
            except Exception:
                logger.exception(f"Error in app changed handler (reason={reason})")

    # Loading
    async def fetch_data(self) -> None:
        """Load project, columns and tabs, build the views, fetch the first page.

        TransportError from the setup calls propagates to the caller; a failing
        first page is recorded on the DataStore like any other fetch.
        """
        self.project = dict(await self.api.call("project") or {})
        self.fields = [Field.from_dict(c) for c in _unwrap_list(await self.api.call("columns"), "columns")]
        tabs = _unwrap_list(await self.api.call("tabs"), "tabs") or [dict(DEFAULT_TAB)]
        self._build_views(tabs)
        logger.info(
            f"Loaded project {self.project.get('id')!r}: {len(self.fields)} fields, "
            f"{len(tabs)} tabs, mode={self.mode}"
        )
        self._notify("data")
        await self.current_view.data_store.fetch({"interaction": "init"})

    def _build_views(self, tabs: List[Mapping[str, Any]]) -> None:
        self.views = {}
        for tab in tabs:
            tab_id = tab.get("id")
            hidden = self.table_config.hidden_for("explore", self.fields)
            tab_hidden = tab.get("hiddenColumns") or {}
            if isinstance(tab_hidden, Mapping):
                hidden |= set(tab_hidden.get("explore") or [])
            self.views[tab_id] = View(
                tab_id,
                self.api,
                fields=self.fields,
                view_type=tab.get("type") or ViewType.LIST,
                title=str(tab.get("title") or tab_id),
                hidden_columns=hidden,
                ordering=_parse_ordering(tab.get("ordering")),
                filters=_parse_filters(tab.get("filters")),
                page_size=self.page_size,
            )
        first_tab_id = next(iter(self.views))
        self.current_tab_id = first_tab_id
        self.views[LABELSTREAM_VIEW_ID] = View(
            LABELSTREAM_VIEW_ID,
            self.api,
            fields=self.fields,
            view_type=ViewType.LABELSTREAM,
            title="Label stream",
            hidden_columns=self.table_config.hidden_for("labeling", self.fields),
            page_size=self.page_size,
            tab_id=first_tab_id,
        )

    # Views
    @property
    def current_view(self) -> View:
        if not self.views:
            raise ConfigurationError("AppStore has no views; call fetch_data() first")
        if self.mode == MODE_LABELSTREAM:
            return self.views[LABELSTREAM_VIEW_ID]
        return self.views[self.current_tab_id]

    @property
    def data_store(self):
        return self.current_view.data_store

    @property
    def tabs(self) -> List[View]:
        return [v for k, v in self.views.items() if k != LABELSTREAM_VIEW_ID]

    async def select_view(self, view_id: Any) -> View:
        """Make a tab current and fetch its first page if nothing is materialized."""
        if view_id not in self.views or view_id == LABELSTREAM_VIEW_ID:
            raise ConfigurationError(f"Unknown tab {view_id!r}")
        self.current_tab_id = view_id
        self._notify("view")
        view = self.views[view_id]
        await self._load_first_page(view, "tab")
        return view

    @staticmethod
    async def _load_first_page(view: View, interaction: str) -> bool:
        store = view.data_store
        if store.items or not store.has_next_page or store.loading:
            return False
        return await store.fetch({"interaction": interaction})

    async def load_current_view(self) -> bool:
        """Fetch page 1 of the current view if nothing is materialized yet."""
        return await self._load_first_page(self.current_view, "mode")

    def set_mode(self, mode: str) -> None:
        """Switch mode; the newly current view is loaded on the running loop.

        Without a running loop the caller awaits ``load_current_view()``.
        """
        self.mode = validate_mode(mode)
        self._notify("mode")
        if self.views:
            self._schedule(self.load_current_view())

    def _schedule(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running loop, current view is loaded on demand")
            coro.close()
            return
        task = loop.create_task(coro)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error(f"loading the current view failed: {exc}", exc_info=exc)

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait until every scheduled view load has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def is_label_stream(self) -> bool:
        return self.mode == MODE_LABELSTREAM

    @property
    def is_labeling(self) -> bool:
        return self.selected_task is not None or self.is_label_stream

    def interface_enabled(self, name: str) -> bool:
        return bool(self.interfaces.get(name, False))

    # Task focus
    def set_task(self, task: Record | Any, annotation_id: Any = None) -> Optional[Record]:
        """Focus a task (record or id) and optionally one of its annotations."""
        if not isinstance(task, Mapping):
            found = self.current_view.data_store.get_item(task)
            if found is None:
                logger.warning(f"set_task: task {task!r} is not materialized")
                return None
            task = found

        self.selected_task = dict(task) if not isinstance(task, dict) else task
        self.selected_annotation = None
        if annotation_id is not None:
            self.selected_annotation = next(
                (a for a in self.selected_task.get("annotations") or [] if isinstance(a, Mapping) and a.get("id") == annotation_id),
                {"id": annotation_id},
            )
        self.current_view.data_store.set_selected(record_id(self.selected_task))
        self._notify("task")
        return self.selected_task

    def unset_task(self) -> None:
        self.selected_task = None
        self.selected_annotation = None
        for view in self.views.values():
            if view.data_store.selected_id is not None:
                view.data_store.set_selected(None)
        self._notify("task")

    @staticmethod
    def last_annotation_id(task: Optional[Mapping[str, Any]]) -> Any:
        if not task:
            return None
        annotations = [a for a in task.get("annotations") or [] if isinstance(a, Mapping)]
        if annotations:
            return annotations[-1].get("id")
        return task.get("last_annotation_id")

    async def load_task(self, task_id: Any) -> Optional[Record]:
        """Fetch a task and replace its materialized copies in every store."""
        record = await self.api.call("task", {"taskID": task_id})
        if not isinstance(record, Mapping):
            logger.warning(f"load_task: no payload for task {task_id!r}")
            return None
        record = dict(record)
        for view in self.views.values():
            view.data_store.update_item(record)
        if self.selected_task is not None and record_id(self.selected_task) == record_id(record):
            self.selected_task = record
            self._notify("task")
        return record

    # Toolbar actions
    @property
    def actions(self) -> List[Any]:
        return sorted(self._actions.values(), key=lambda a: getattr(a, "order", 0))

    def add_actions(self, *actions: Any) -> None:
        for action in actions:
            self._actions[action.id] = action
        self._notify("actions")

    def remove_action(self, action_id: str) -> None:
        if self._actions.pop(action_id, None) is not None:
            self._notify("actions")

    async def invoke_backend_action(self, action_id: str, view: Optional[View] = None) -> Any:
        """Run a backend action on the selection of ``view`` and reload it."""
        view = view or self.current_view
        result = await self.api_call(
            "invokeAction",
            {"tabID": view.tab_id, "id": action_id},
            {"selectedItems": {"all": False, "included": view.selected}},
        )
        await view.reload()
        return result

    def update_instruments(self) -> None:
        self.instruments_version += 1
        self._notify("instruments")

    async def api_call(self, name: str, params: Optional[Mapping[str, Any]] = None, body: Any = None) -> Any:
        """Generic API call facility exposed through ``DataManager.api_call``."""
        try:
            return await self.api.call(name, params, body)
        except Exception as exc:
            logger.error(f"api_call {name!r} failed: {exc}")
            raise

    def destroy(self) -> None:
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        for view in self.views.values():
            view.destroy()
        self.views = {}
        self._actions = {}
        self.selected_task = None
        self.selected_annotation = None
        self.destroyed = True
        self._notify("destroyed")
        self._changed_handlers.clear()
