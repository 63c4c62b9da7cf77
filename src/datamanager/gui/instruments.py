"""Registry of toolbar instruments (pluggable toolbar controls).

Built-in instruments are provided by ``gui.views.toolbar_instruments`` and
cannot be overridden; host instruments are built once, at registration, by
calling their initializer with an InstrumentContext.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from datamanager.core.utils.logging import get_logger

if TYPE_CHECKING:
    from datamanager.core.app_store import AppStore
    from datamanager.gui.data_manager import DataManager

logger = get_logger(__name__)

BUILTIN_INSTRUMENT_NAMES = (
    "actions",
    "columns",
    "filters",
    "ordering",
    "label-button",
    "loading-possum",
    "error-box",
    "refresh",
    "view-toggle",
)


@dataclass(frozen=True)
class InstrumentContext:
    """Collaborators passed to instrument initializers.

    Attributes:
        store: Current AppStore (None before the first init_app completed).
        observer: Makes a render function refreshable.
        inject: Binds store-selected props into a render function.
        data_manager: Owning DataManager, for orchestration callbacks.
    """

    store: Optional["AppStore"]
    observer: Callable[..., Any]
    inject: Callable[..., Any]
    data_manager: Optional["DataManager"] = None


# builder(context) -> renderer; renderer() draws the control in the current container
InstrumentBuilder = Callable[[InstrumentContext], Any]


class InstrumentRegistry:
    """Name-keyed registry of built-in and host instruments.

    Args:
        builtins: Reserved name -> builder of the built-in control.
        context_factory: Returns the current InstrumentContext.
    """

    def __init__(
        self,
        builtins: Mapping[str, InstrumentBuilder],
        context_factory: Callable[[], InstrumentContext],
    ) -> None:
        self._builtins: Dict[str, InstrumentBuilder] = dict(builtins)
        self._context_factory = context_factory
        self._instances: Dict[str, Any] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    @property
    def names(self) -> list[str]:
        return list(self._instances)

    def is_reserved(self, name: str) -> bool:
        return name in self._builtins or name in BUILTIN_INSTRUMENT_NAMES

    def register(self, name: str, initializer: InstrumentBuilder) -> bool:
        """Build and store a host instrument.

        Reserved built-in names are logged and skipped.

        Returns:
            True if the instrument was registered.
        """
        if self.is_reserved(name):
            logger.warning(f"Can't override native instrument {name}")
            return False
        self._instances[name] = initializer(self._context_factory())
        logger.info(f"registered instrument {name!r}")
        return True

    def prepare(self, instruments: Optional[Mapping[str, InstrumentBuilder]]) -> None:
        """Register every configured instrument (construction time)."""
        for name, initializer in (instruments or {}).items():
            self.register(name, initializer)

    def get(self, name: str) -> Any:
        return self._instances.get(name)

    def resolve(self, name: str) -> Any:
        """Renderer for ``name``: built-in first, then host instruments; None if unknown."""
        builder = self._builtins.get(name)
        if builder is not None:
            return builder(self._context_factory())
        return self._instances.get(name)
