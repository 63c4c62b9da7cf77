"""Data manager application entry point.

Serves one NiceGUI page that mounts a DataManager configured from the
per-user JSON config (or the file named by ``DATAMANAGER_CONFIG``).

Run with:
    python -m datamanager.gui.app
"""

from __future__ import annotations

import os
from pathlib import Path

from nicegui import ui

from datamanager.core.utils.logging import get_logger, setup_logging
from datamanager.gui.app_config import DMConfig
from datamanager.gui.data_manager import DataManager

logger = get_logger(__name__)

setup_logging(level=os.getenv("DATAMANAGER_LOG_LEVEL", "INFO"))


def _env_bool(name: str, default: bool) -> bool:
    """Parse env var as bool; if unset/invalid returns default."""
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    """Parse env var as int; if unset/invalid returns default."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_config() -> DMConfig:
    raw_path = os.getenv("DATAMANAGER_CONFIG")
    return DMConfig.load(Path(raw_path) if raw_path else None)


@ui.page("/")
async def home() -> None:
    """One DataManager per browser tab."""
    ui.page_title("Data Manager")
    root = ui.column().classes("w-full h-screen p-0")

    config = load_config()
    config.root = root
    dm = DataManager(config, autostart=False)

    try:
        await dm.init_app()
    except Exception as exc:
        # aclose() clears root, so draw the error afterwards
        await dm.aclose()
        with root:
            ui.label(f"Failed to load data manager: {exc}").classes("text-red-600 p-4")
            ui.button("Retry", on_click=lambda: ui.navigate.reload())
        return

    ui.context.client.on_disconnect(dm.aclose)


def main(*, reload: bool | None = None) -> None:
    """Start the data manager web app.

    Env vars (used only when arg is None):
      - DATAMANAGER_RELOAD: 1/0
      - HOST: bind host
      - PORT: bind port (default 8080)
    """
    reload = _env_bool("DATAMANAGER_RELOAD", False) if reload is None else reload
    port = _env_int("PORT", 8080)
    host = os.getenv("HOST", "127.0.0.1")

    logger.info(f"Starting Data Manager: host={host} port={port} reload={reload}")
    ui.run(host=host, port=port, reload=reload, title="Data Manager")


if __name__ in {"__main__", "__mp_main__"}:
    main()
