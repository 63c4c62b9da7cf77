"""Host-registered actions exposed in the toolbar "actions" menu."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from datamanager.core.errors import ConfigurationError, DuplicateKeyError
from datamanager.core.utils.logging import get_logger

logger = get_logger(__name__)

ActionCallback = Callable[..., Any]


@dataclass(frozen=True)
class Action:
    """Toolbar-visible description of an action.

    Attributes:
        id: Unique action identifier.
        title: Menu label.
        order: Sort key in the menu.
        hidden: Registered but not listed in the menu.
        dialog: Optional confirmation dialog ``{"text": ..., "type": "confirm"}``.
    """

    id: str
    title: str = ""
    order: int = 0
    hidden: bool = False
    dialog: Optional[Dict[str, Any]] = None

    @classmethod
    def from_value(cls, value: "Action | Mapping[str, Any]") -> "Action":
        """Accept an Action or a host dict like ``{"id": "x", "title": "X"}``."""
        if isinstance(value, Action):
            action_id = value.id
        elif isinstance(value, Mapping):
            action_id = value.get("id")
        else:
            raise ConfigurationError(f"Action must be a mapping or Action, got {type(value).__name__}")

        if not action_id:
            raise ConfigurationError("Action must provide a unique ID")
        if isinstance(value, Action):
            return value
        return cls(
            id=str(action_id),
            title=str(value.get("title") or action_id),
            order=int(value.get("order", 0)),
            hidden=bool(value.get("hidden", False)),
            dialog=value.get("dialog"),
        )


@dataclass(frozen=True)
class _Entry:
    action: Action
    callback: ActionCallback


class ActionRegistry:
    """Id-keyed registry of host actions.

    Registrations are mirrored into the current AppStore (through
    ``store_getter``) so they show up in the toolbar; ``install()`` re-pushes
    every registration after the store was rebuilt by a reload.
    """

    def __init__(self, store_getter: Callable[[], Any]) -> None:
        self._store_getter = store_getter
        self._entries: Dict[str, _Entry] = {}

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def actions(self) -> List[Action]:
        return [e.action for e in self._entries.values()]

    def add(self, action: "Action | Mapping[str, Any]", callback: ActionCallback) -> Action:
        """Register ``callback`` under ``action.id``.

        Raises:
            ConfigurationError: The action has no id.
            DuplicateKeyError: An action with this id is already registered.
        """
        parsed = Action.from_value(action)
        if parsed.id in self._entries:
            raise DuplicateKeyError(parsed.id)
        self._entries[parsed.id] = _Entry(parsed, callback)
        logger.info(f"registered action {parsed.id!r}")

        store = self._store_getter()
        if store is not None:
            store.add_actions(parsed)
        return parsed

    def remove(self, action_id: str) -> None:
        """Drop the action from the registry and the toolbar; unknown ids are ignored."""
        entry = self._entries.pop(action_id, None)
        if entry is None:
            return
        store = self._store_getter()
        if store is not None:
            store.remove_action(action_id)

    def get(self, action_id: str) -> Optional[ActionCallback]:
        entry = self._entries.get(action_id)
        return entry.callback if entry is not None else None

    def install(self) -> None:
        """Push every registered action into the current store."""
        store = self._store_getter()
        if store is None:
            return
        store.add_actions(*(e.action for e in self._entries.values()))
