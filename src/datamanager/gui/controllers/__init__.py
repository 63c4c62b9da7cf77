# src/datamanager/gui/controllers/__init__.py
"""Controllers coordinate View/DataStore state and user interaction."""

from datamanager.gui.controllers.table_controller import IncrementalTableController

__all__ = ["IncrementalTableController"]
