"""Built-in toolbar instruments.

Each builder takes the InstrumentContext and returns a render function that
draws the control into the current NiceGUI container. Builders are resolved
at render time, so ``ctx.store`` is the store of the current lifecycle.
"""

from __future__ import annotations

import weakref
from typing import Callable, Dict, Optional

from nicegui import ui

from datamanager.core.app_store import MODE_EXPLORER, MODE_LABELSTREAM
from datamanager.core.data_store import DataStore
from datamanager.core.fields import Filter
from datamanager.core.utils.logging import get_logger
from datamanager.core.view import View, ViewType
from datamanager.gui.client_utils import safe_call
from datamanager.gui.instruments import InstrumentContext

logger = get_logger(__name__)

Render = Callable[[], None]

# DataStore -> change handler of the most recently rendered actions menu
_menu_handlers: "weakref.WeakKeyDictionary[DataStore, Callable]" = weakref.WeakKeyDictionary()


def _current_view(ctx: InstrumentContext) -> Optional[View]:
    if ctx.store is None or not ctx.store.views:
        return None
    return ctx.store.current_view


def _noop() -> None:
    return None


def actions_instrument(ctx: InstrumentContext) -> Render:
    dm = ctx.data_manager
    view = _current_view(ctx)
    if dm is None or view is None:
        return _noop

    async def _run(action) -> None:
        if action.dialog:
            with ui.dialog() as dialog, ui.card():
                ui.label(str(action.dialog.get("text") or f"Run {action.title}?"))
                with ui.row():
                    ui.button("Cancel", on_click=lambda: dialog.submit(False)).props("flat")
                    ui.button("OK", on_click=lambda: dialog.submit(True))
            if not await dialog:
                return
        await dm.invoke_action(action.id, view)

    @ctx.observer
    def menu() -> None:
        actions = [a for a in ctx.store.actions if not getattr(a, "hidden", False)]
        count = len(view.selected)
        with ui.button(f"{count} tasks" if count else "Actions", icon="expand_more") as button:
            with ui.menu():
                for action in actions:
                    ui.menu_item(action.title, on_click=lambda _e, a=action: _run(a))
        button.props("flat dense no-caps")
        if not count or not actions:
            button.disable()

    def _on_store_changed(_store, reason: str) -> None:
        if reason in ("selection", "reset", "removed"):
            safe_call(menu.refresh)

    def render() -> None:
        menu()
        store = view.data_store
        previous = _menu_handlers.get(store)
        if previous is not None:
            store.off_changed(previous)
        store.on_changed(_on_store_changed)
        _menu_handlers[store] = _on_store_changed

    return render


def columns_instrument(ctx: InstrumentContext) -> Render:
    view = _current_view(ctx)
    if view is None:
        return _noop

    def render() -> None:
        with ui.button("Columns", icon="view_column").props("flat dense no-caps"):
            with ui.menu(), ui.column().classes("p-2 gap-0"):
                for fld in view.fields:
                    ui.checkbox(
                        fld.title,
                        value=fld.id not in view.hidden_columns,
                        on_change=lambda e, fid=fld.id: view.set_column_hidden(fid, not e.value),
                    ).props("dense")

    return render


def filters_instrument(ctx: InstrumentContext) -> Render:
    view = _current_view(ctx)
    if view is None:
        return _noop

    def render() -> None:
        current = view.filters[0] if view.filters else None
        options = {f.id: f.title for f in view.fields}
        label = f"Filters ({len(view.filters)})" if view.filters else "Filters"
        with ui.button(label, icon="filter_list").props("flat dense no-caps"):
            with ui.menu(), ui.column().classes("p-2"):
                field_select = ui.select(options, value=current.field_id if current else None, label="Column").classes("w-48")
                value_input = ui.input("Contains", value=str(current.value) if current and current.value is not None else "")

                async def _apply() -> None:
                    if not field_select.value:
                        return
                    await view.set_filters([Filter(field_select.value, "contains", value_input.value)])

                async def _clear() -> None:
                    await view.set_filters([])

                with ui.row():
                    ui.button("Apply", on_click=_apply).props("dense")
                    ui.button("Clear", on_click=_clear).props("dense flat")

    return render


def ordering_instrument(ctx: InstrumentContext) -> Render:
    view = _current_view(ctx)
    if view is None:
        return _noop

    async def _on_change(e) -> None:
        if e.value and (view.ordering is None or view.ordering.field_id != e.value):
            await view.set_ordering(e.value)

    async def _flip() -> None:
        if view.ordering is not None:
            await view.set_ordering(view.ordering.field_id)

    def render() -> None:
        options = {f.id: f.title for f in view.fields if f.sortable}
        current = view.ordering.field_id if view.ordering else None
        with ui.row().classes("items-center gap-0"):
            ui.select(options, value=current, label="Order by", on_change=_on_change).props("dense").classes("w-40")
            icon = "arrow_downward" if view.ordering and view.ordering.descending else "arrow_upward"
            flip = ui.button(icon=icon, on_click=_flip).props("flat dense round")
            if view.ordering is None:
                flip.disable()

    return render


def label_button_instrument(ctx: InstrumentContext) -> Render:
    dm = ctx.data_manager
    if dm is None or ctx.store is None:
        return _noop

    async def _label_all() -> None:
        dm.set_mode(MODE_LABELSTREAM)
        await ctx.store.load_current_view()
        if dm.editor_element is None:
            return
        editor = dm.init_lsf(dm.editor_element)
        load_next = getattr(editor, "load_next_task", None)
        if load_next is not None:
            await load_next()

    async def _back() -> None:
        dm.destroy_lsf()
        ctx.store.unset_task()
        dm.set_mode(MODE_EXPLORER)
        await ctx.store.load_current_view()

    def render() -> None:
        if dm.is_labeling:
            if dm.interface_enabled("backButton"):
                ui.button("Back", icon="arrow_back", on_click=_back).props("flat dense no-caps")
            return
        if dm.interface_enabled("labelButton"):
            ui.button("Label All Tasks", icon="play_arrow", on_click=_label_all).props("color=primary dense no-caps")

    return render


def loading_possum_instrument(ctx: InstrumentContext) -> Render:
    view = _current_view(ctx)
    if view is None:
        return _noop

    def render() -> None:
        ui.spinner(size="sm").bind_visibility_from(view.data_store, "loading")

    return render


def error_box_instrument(ctx: InstrumentContext) -> Render:
    view = _current_view(ctx)
    if view is None:
        return _noop
    store = view.data_store

    async def _retry() -> None:
        await store.fetch({"interaction": "retry"})

    def render() -> None:
        with ui.row().classes("items-center gap-1").bind_visibility_from(store, "error", backward=bool):
            ui.icon("error", color="negative")
            ui.label().classes("text-sm text-red-600").bind_text_from(store, "error", backward=lambda e: str(e) if e else "")
            ui.button("Retry", on_click=_retry).props("flat dense no-caps")

    return render


def refresh_instrument(ctx: InstrumentContext) -> Render:
    view = _current_view(ctx)
    if view is None:
        return _noop

    async def _refresh() -> None:
        await view.reload()

    def render() -> None:
        ui.button(icon="refresh", on_click=_refresh).props("flat dense round").tooltip("Refresh")

    return render


def view_toggle_instrument(ctx: InstrumentContext) -> Render:
    view = _current_view(ctx)
    if view is None:
        return _noop

    def render() -> None:
        if view.type == ViewType.LABELSTREAM:
            return
        ui.toggle(
            {ViewType.LIST.value: "List", ViewType.GRID.value: "Grid"},
            value=view.type.value,
            on_change=lambda e: view.set_type(e.value),
        ).props("dense no-caps")

    return render


BUILTIN_INSTRUMENTS: Dict[str, Callable[[InstrumentContext], Render]] = {
    "actions": actions_instrument,
    "columns": columns_instrument,
    "filters": filters_instrument,
    "ordering": ordering_instrument,
    "label-button": label_button_instrument,
    "loading-possum": loading_possum_instrument,
    "error-box": error_box_instrument,
    "refresh": refresh_instrument,
    "view-toggle": view_toggle_instrument,
}
