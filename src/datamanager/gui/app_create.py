"""Build the AppStore for one DataManager lifecycle and mount its layout."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from datamanager.core.app_store import AppStore
from datamanager.core.utils.logging import get_logger

if TYPE_CHECKING:
    from datamanager.gui.data_manager import DataManager

logger = get_logger(__name__)


async def create_app(root: Any, dm: "DataManager") -> AppStore:
    """Create and load the AppStore, then render the layout into ``root``.

    Args:
        root: NiceGUI container to mount into, or None to run headless.
        dm: Owning DataManager (injected into every component).

    Returns:
        The loaded AppStore.
    """
    store = AppStore(
        dm.api,
        mode=dm.mode,
        table_config=dm.config.table,
        interfaces=dm.interfaces,
        page_size=dm.config.page_size,
    )
    await store.fetch_data()
    # instruments resolved while rendering read the store through dm
    dm.store = store

    if root is not None:
        from datamanager.gui.views.app_layout import DataManagerLayout

        with root:
            DataManagerLayout(dm, store).render()
        logger.debug(f"mounted DataManager layout into {root!r}")
    return store
