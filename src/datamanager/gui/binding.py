"""Binding helpers handed to instrument initializers.

``observer`` makes a render function re-renderable (``.refresh()``) and
``inject`` feeds it props selected from the current AppStore, so host
instruments can stay in sync with the store without reaching into it.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Mapping, Optional

from nicegui import ui

Selector = Callable[[Any], Mapping[str, Any]]


def observer(render: Callable[..., Any]) -> ui.refreshable:
    """Wrap ``render`` in ``ui.refreshable``; call ``.refresh()`` on store changes."""
    return ui.refreshable(render)


def make_inject(store_getter: Callable[[], Optional[Any]]) -> Callable[[Selector], Callable]:
    """Build an ``inject(selector)`` decorator bound to ``store_getter``.

    The decorated render function receives ``selector(store)`` as keyword
    arguments; explicit keyword arguments at call time win.
    """

    def inject(selector: Selector) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        def decorate(render: Callable[..., Any]) -> Callable[..., Any]:
            @functools.wraps(render)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                store = store_getter()
                props = dict(selector(store)) if store is not None else {}
                props.update(kwargs)
                return render(*args, **props)

            return wrapper

        return decorate

    return inject
