# src/datamanager/gui/views/__init__.py
"""NiceGUI views of the data manager."""

from datamanager.gui.views.app_layout import DataManagerLayout
from datamanager.gui.views.data_view import DataView
from datamanager.gui.views.toolbar_instruments import BUILTIN_INSTRUMENTS
from datamanager.gui.views.toolbar_view import ToolbarView, parse_toolbar

__all__ = [
    "BUILTIN_INSTRUMENTS",
    "DataManagerLayout",
    "DataView",
    "ToolbarView",
    "parse_toolbar",
]
