"""Toolbar view built from the declarative toolbar string.

``"actions columns | refresh view-toggle"`` is two groups; every name is
resolved through the InstrumentRegistry (built-in first, then host
instruments). Unknown names are logged and skipped.
"""

from __future__ import annotations

from typing import List

from nicegui import ui

from datamanager.core.utils.logging import get_logger
from datamanager.gui.instruments import InstrumentRegistry

logger = get_logger(__name__)

GROUP_SEPARATOR = "|"


def parse_toolbar(spec: str) -> List[List[str]]:
    """Split a toolbar spec into groups of instrument names.

    Empty groups are dropped.

    Examples:
        >>> parse_toolbar("actions columns | refresh")
        [['actions', 'columns'], ['refresh']]
    """
    groups: List[List[str]] = []
    for chunk in (spec or "").split(GROUP_SEPARATOR):
        names = chunk.split()
        if names:
            groups.append(names)
    return groups


class ToolbarView:
    """Render toolbar groups left to right, separated by flexible space."""

    def __init__(self, registry: InstrumentRegistry, spec: str) -> None:
        self._registry = registry
        self._groups = parse_toolbar(spec)

    @property
    def groups(self) -> List[List[str]]:
        return [list(g) for g in self._groups]

    def render(self) -> None:
        with ui.row().classes("w-full items-center gap-2 px-2 py-1 border-b"):
            for index, group in enumerate(self._groups):
                if index:
                    ui.space()
                with ui.row().classes("items-center gap-2"):
                    for name in group:
                        self._render_instrument(name)

    def _render_instrument(self, name: str) -> None:
        renderer = self._registry.resolve(name)
        if renderer is None:
            logger.warning(f"unknown toolbar instrument {name!r}, skipping")
            return
        if callable(renderer):
            renderer()
        else:
            logger.warning(f"instrument {name!r} is not renderable ({type(renderer).__name__})")
