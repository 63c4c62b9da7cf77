"""Helpers for touching NiceGUI elements whose client may already be gone."""

from __future__ import annotations

from typing import Any, Callable, Optional

from nicegui import ui

from datamanager.core.utils.logging import get_logger

logger = get_logger(__name__)


def is_client_alive() -> bool:
    """True if the current NiceGUI client context is still accessible."""
    try:
        _ = ui.context.client.id
        return True
    except (AttributeError, RuntimeError):
        return False


def safe_call(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Any]:
    """Call ``func``, ignoring "client deleted" errors.

    Store and view callbacks can outlive the browser tab that rendered them
    (e.g. a page fetch settling after the tab closed). Any other RuntimeError
    is logged and re-raised.

    Returns:
        The result of ``func``, or None if the client was deleted.
    """
    try:
        return func(*args, **kwargs)
    except RuntimeError as e:
        if "deleted" not in str(e).lower():
            logger.error(f"safe_call caught RuntimeError in {getattr(func, '__name__', func)!r}: {e}")
            raise
        return None
