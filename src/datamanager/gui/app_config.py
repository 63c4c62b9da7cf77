"""
DataManager configuration (constructor options + platformdirs JSON file).

Hosts usually pass a dict with the JS-style option names (``projectId``,
``apiGateway``, ``table.hiddenColumns`` ...). ``DMConfig.from_dict`` accepts
those as well as snake_case names, ignores unknown keys and coerces booleans
tolerantly. Only ``mode`` is validated strictly (ConfigurationError).

Behavior of ``DMConfig.load``:
- If the file is missing or unreadable -> defaults are used
- Non-JSON-friendly options (root, instruments, mocks) are never persisted
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from platformdirs import user_config_dir

from datamanager.core.app_store import MODE_EXPLORER, TableConfig, validate_mode
from datamanager.core.data_store import DEFAULT_PAGE_SIZE
from datamanager.core.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TOOLBAR: str = "actions columns filters ordering label-button loading-possum error-box | refresh view-toggle"

DEFAULT_LINKS: Dict[str, Optional[str]] = {
    "import": "/import",
    "export": "/export",
    "settings": "./settings",
}

DEFAULT_INTERFACES: Dict[str, bool] = {
    "tabs": True,
    "toolbar": True,
    "import": True,
    "export": True,
    "labelButton": True,
    "backButton": True,
    "labelingHeader": True,
}

# camelCase option name -> DMConfig attribute
_ALIASES: Dict[str, str] = {
    "projectId": "project_id",
    "apiGateway": "api_gateway",
    "apiEndpoints": "api_endpoints",
    "apiHeaders": "api_headers",
    "apiMockDisabled": "api_mock_disabled",
    "apiSharedParams": "api_shared_params",
    "apiMocks": "api_mocks",
    "apiVersion": "api_version",
    "showPreviews": "show_previews",
    "labelStudio": "label_studio",
    "pageSize": "page_size",
}


def _to_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _str_lists(value: Any) -> Dict[str, List[str]]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): [str(v) for v in (items or [])] for k, items in value.items()}


def _parse_table(value: Any) -> TableConfig:
    if isinstance(value, TableConfig):
        return value
    if not isinstance(value, Mapping):
        return TableConfig()
    return TableConfig(
        hidden_columns=_str_lists(value.get("hiddenColumns", value.get("hidden_columns"))),
        visible_columns=_str_lists(value.get("visibleColumns", value.get("visible_columns"))),
    )


@dataclass
class DMConfig:
    """Options recognized by the DataManager constructor.

    Attributes:
        root: Mount point (a NiceGUI element) for the rendered UI, or None (headless).
        project_id: Scopes API calls; read from the root's ``data-project-id`` prop if None.
        api_gateway / api_endpoints / api_headers / api_mock_disabled /
        api_shared_params / api_mocks: APIProxy configuration.
        mode: ``"explorer"`` or ``"labelstream"``.
        table: Per-mode hidden/visible column overrides.
        interfaces: Named UI affordances -> enabled (merged over DEFAULT_INTERFACES).
        instruments: Host instrument name -> initializer.
        toolbar: Declarative toolbar spec, groups separated by ``|``.
        links: Import/export/settings URLs (merged over DEFAULT_LINKS).
        show_previews / polling: Feature toggles.
        settings / label_studio: Opaque options forwarded to the editor.
        env: ``"development"`` or ``"production"``.
        page_size: Records per page for every DataStore.
    """

    root: Any = None
    project_id: Any = None
    api_gateway: Optional[str] = None
    api_endpoints: Dict[str, str] = field(default_factory=dict)
    api_headers: Dict[str, str] = field(default_factory=dict)
    api_mock_disabled: bool = True
    api_shared_params: Dict[str, Any] = field(default_factory=dict)
    api_mocks: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    api_version: int = 1
    mode: str = MODE_EXPLORER
    table: TableConfig = field(default_factory=TableConfig)
    interfaces: Dict[str, bool] = field(default_factory=lambda: dict(DEFAULT_INTERFACES))
    instruments: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    toolbar: str = DEFAULT_TOOLBAR
    links: Dict[str, Optional[str]] = field(default_factory=lambda: dict(DEFAULT_LINKS))
    show_previews: bool = False
    polling: bool = True
    settings: Dict[str, Any] = field(default_factory=dict)
    label_studio: Dict[str, Any] = field(default_factory=dict)
    env: str = field(default_factory=lambda: os.getenv("DATAMANAGER_ENV", "production"))
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        validate_mode(self.mode)

    @classmethod
    def from_dict(cls, d: Optional[Mapping[str, Any]]) -> "DMConfig":
        """
        Tolerant loader:
        - accepts camelCase and snake_case option names
        - ignores unknown keys
        - merges interfaces and links over their defaults

        Raises:
            ConfigurationError: ``mode`` is not a known mode.
        """
        d = dict(d or {})
        values: Dict[str, Any] = {}
        known = set(cls.__dataclass_fields__)
        for key, value in d.items():
            name = _ALIASES.get(key, key)
            if name in known:
                values[name] = value
            else:
                logger.debug(f"Ignoring unknown config option {key!r}")

        cfg = cls(mode=values.pop("mode", None) or MODE_EXPLORER)

        for name in ("root", "project_id", "api_gateway", "env"):
            if values.get(name) is not None:
                setattr(cfg, name, values[name])
        for name in ("api_endpoints", "api_headers", "api_shared_params", "api_mocks", "instruments", "settings", "label_studio"):
            if isinstance(values.get(name), Mapping):
                setattr(cfg, name, dict(values[name]))

        cfg.api_mock_disabled = _to_bool(values.get("api_mock_disabled"), cfg.api_mock_disabled)
        cfg.show_previews = _to_bool(values.get("show_previews"), cfg.show_previews)
        cfg.polling = _to_bool(values.get("polling"), cfg.polling)
        cfg.table = _parse_table(values.get("table"))

        if isinstance(values.get("interfaces"), Mapping):
            cfg.interfaces.update({str(k): _to_bool(v, False) for k, v in values["interfaces"].items()})
        if isinstance(values.get("links"), Mapping):
            cfg.links.update(values["links"])
        if isinstance(values.get("toolbar"), str) and values["toolbar"].strip():
            cfg.toolbar = values["toolbar"]

        for name in ("api_version", "page_size"):
            raw = values.get(name)
            if raw is None:
                continue
            try:
                parsed = int(raw)
            except (TypeError, ValueError):
                logger.warning(f"Invalid {name} {raw!r}, using default {getattr(cfg, name)}")
                continue
            if parsed > 0:
                setattr(cfg, name, parsed)
            else:
                logger.warning(f"Invalid {name} {raw!r}, using default {getattr(cfg, name)}")
        return cfg

    def hidden_columns_for(self, mode: str) -> Dict[str, List[str]]:
        """Hidden/visible column overrides for ``mode`` (``explore``/``labeling`` keys)."""
        key = "labeling" if mode == "labelstream" else "explore"
        return {
            "hidden": list(self.table.hidden_columns.get(key, [])),
            "visible": list(self.table.visible_columns.get(key, [])),
        }

    def to_json_dict(self) -> Dict[str, Any]:
        """JSON-serializable options (no root, instruments or mocks)."""
        return {
            "projectId": self.project_id,
            "apiGateway": self.api_gateway,
            "apiEndpoints": dict(self.api_endpoints),
            "apiHeaders": dict(self.api_headers),
            "apiMockDisabled": self.api_mock_disabled,
            "apiSharedParams": dict(self.api_shared_params),
            "apiVersion": self.api_version,
            "mode": self.mode,
            "table": {
                "hiddenColumns": dict(self.table.hidden_columns),
                "visibleColumns": dict(self.table.visible_columns),
            },
            "interfaces": dict(self.interfaces),
            "toolbar": self.toolbar,
            "links": dict(self.links),
            "showPreviews": self.show_previews,
            "polling": self.polling,
            "settings": dict(self.settings),
            "labelStudio": dict(self.label_studio),
            "env": self.env,
            "pageSize": self.page_size,
        }

    # -----------------------------
    # Persistence
    # -----------------------------
    @staticmethod
    def default_config_path(app_name: str = "datamanager", filename: str = "datamanager.json") -> Path:
        """
        Determine OS-appropriate per-user config path.

        macOS:   ~/Library/Application Support/datamanager/datamanager.json
        Linux:   ~/.config/datamanager/datamanager.json
        Windows: %APPDATA%\\datamanager\\datamanager.json
        """
        return Path(user_config_dir(app_name)) / filename

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "DMConfig":
        """Load options from a JSON file; missing or unreadable file -> defaults."""
        path = config_path or cls.default_config_path()
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info(f"DataManager config not found at {path}, using defaults")
            return cls()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load DataManager config from {path}: {e}")
            return cls()
        if not isinstance(parsed, dict):
            logger.warning(f"DataManager config at {path} does not contain a dict, using defaults")
            return cls()
        logger.info(f"DataManager config loaded from: {path}")
        return cls.from_dict(parsed)

    def save(self, config_path: Optional[Path] = None) -> Path:
        path = config_path or self.default_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_json_dict(), indent=2), encoding="utf-8")
        logger.info(f"saved DataManager config to {path}")
        return path
