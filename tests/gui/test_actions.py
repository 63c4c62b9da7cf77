"""Tests for Action parsing and ActionRegistry."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from datamanager.core.errors import ConfigurationError, DuplicateKeyError
from datamanager.gui.actions import Action, ActionRegistry


def test_from_value_requires_id() -> None:
    with pytest.raises(ConfigurationError):
        Action.from_value({"id": None, "title": "x"})
    with pytest.raises(ConfigurationError):
        Action.from_value({"title": "x"})
    with pytest.raises(ConfigurationError):
        Action.from_value("delete")


def test_from_value_defaults() -> None:
    action = Action.from_value({"id": "export", "order": "3"})
    assert action == Action(id="export", title="export", order=3)


def test_add_and_get() -> None:
    registry = ActionRegistry(lambda: None)

    def callback(selected, dm):
        return selected

    registry.add({"id": "x"}, callback)

    assert "x" in registry
    assert registry.get("x") is callback
    assert registry.get("y") is None


def test_duplicate_id_fails() -> None:
    registry = ActionRegistry(lambda: None)
    registry.add({"id": "x"}, lambda *a: None)

    with pytest.raises(DuplicateKeyError) as excinfo:
        registry.add({"id": "x"}, lambda *a: None)
    assert excinfo.value.key == "x"
    assert len(registry) == 1


def test_registration_is_mirrored_into_store() -> None:
    store = MagicMock()
    registry = ActionRegistry(lambda: store)

    action = registry.add({"id": "x", "title": "X"}, lambda *a: None)
    store.add_actions.assert_called_once_with(action)

    registry.remove("x")
    store.remove_action.assert_called_once_with("x")
    assert "x" not in registry


def test_remove_unknown_is_noop() -> None:
    store = MagicMock()
    registry = ActionRegistry(lambda: store)
    registry.remove("missing")
    store.remove_action.assert_not_called()


def test_install_pushes_all_actions() -> None:
    holder = {"store": None}
    registry = ActionRegistry(lambda: holder["store"])
    a = registry.add({"id": "a"}, lambda *args: None)
    b = registry.add({"id": "b"}, lambda *args: None)

    holder["store"] = MagicMock()
    registry.install()

    holder["store"].add_actions.assert_called_once_with(a, b)
