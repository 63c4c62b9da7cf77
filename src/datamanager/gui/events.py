"""Names of the events the DataManager fires on its EventBus.

Handlers receive:
    READY: ``(data_manager)`` once per successful ``init_app`` (and after each reload).
    MODE_CHANGED: ``(mode)`` only when ``set_mode`` actually changes the mode.
"""

from __future__ import annotations

READY = "ready"
MODE_CHANGED = "modeChanged"
