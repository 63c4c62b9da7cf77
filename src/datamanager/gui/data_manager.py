"""DataManager: the single entry point host code uses to run the engine.

A DataManager composes one EventBus, one ActionRegistry and one
InstrumentRegistry with the AppStore built by ``create_app``. Components
never look the DataManager up; it is injected into the layout, the views,
the table controller and the instrument context.

Lifecycle:
    uninitialized -> initializing -> ready -> (reloading -> ready)* -> destroyed

``ready`` fires once per successful ``init_app`` (and so once after every
``reload``). ``reload`` keeps host subscriptions; ``destroy()`` drops them.
"""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from datamanager.core.api_client import DEFAULT_ENDPOINTS, DEFAULT_GATEWAY, APIConfig, APIProxy
from datamanager.core.app_store import MODE_LABELSTREAM, AppStore, validate_mode
from datamanager.core.errors import DataManagerError
from datamanager.core.fields import Record, record_id
from datamanager.core.utils.logging import get_logger
from datamanager.core.view import View
from datamanager.gui.actions import Action, ActionCallback, ActionRegistry
from datamanager.gui.app_config import DMConfig
from datamanager.gui.binding import make_inject, observer
from datamanager.gui.bus import BusConfig, Callback, EventBus
from datamanager.gui.client_utils import safe_call
from datamanager.gui.events import MODE_CHANGED, READY
from datamanager.gui.instruments import InstrumentBuilder, InstrumentContext, InstrumentRegistry
from datamanager.gui.lsf import Editor, LSFWrapper

logger = get_logger(__name__)

# editor_factory(dm, element, *, task, annotation, is_label_stream, **options) -> Editor
EditorFactory = Callable[..., Editor]


class LifecycleState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    RELOADING = "reloading"
    DESTROYED = "destroyed"


class DataManager:
    """Orchestrates the application state tree, registries and editor.

    Args:
        config: DMConfig or a host option dict (camelCase or snake_case keys).
        editor_factory: Builds the embedded editor; defaults to LSFWrapper.
        transport: Optional httpx transport handed to the APIProxy.
        bus_config: EventBus tracing options.
        autostart: Schedule ``init_app`` on the running loop at construction.
            Without a running loop the host awaits ``init_app()`` itself.

    Attributes:
        config: Parsed configuration.
        mode: Current mode (``"explorer"`` or ``"labelstream"``).
        store: AppStore of the current lifecycle, None before the first
            ``init_app`` and after ``destroy``.
        lsf: Embedded editor instance, if initialized.
        state: LifecycleState.
        editor_element: Container the layout reserves for the editor.
    """

    def __init__(
        self,
        config: DMConfig | Mapping[str, Any] | None = None,
        *,
        editor_factory: Optional[EditorFactory] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        bus_config: Optional[BusConfig] = None,
        autostart: bool = True,
    ) -> None:
        self.config: DMConfig = config if isinstance(config, DMConfig) else DMConfig.from_dict(config)

        self.root = self.config.root
        self._project_id = self.config.project_id
        self.mode: str = validate_mode(self.config.mode)
        self.settings: Dict[str, Any] = self.config.settings
        self.label_studio_options: Dict[str, Any] = self.config.label_studio
        self.env: str = self.config.env
        self.links: Dict[str, Optional[str]] = self.config.links
        self.toolbar: str = self.config.toolbar
        self.interfaces: Dict[str, bool] = self.config.interfaces
        self.show_previews: bool = self.config.show_previews
        self.polling: bool = self.config.polling
        self.api_version: int = self.config.api_version

        self.bus = EventBus(owner=f"datamanager:{self._project_id}", config=bus_config)
        self.api = APIProxy(self.api_config(), transport=transport)

        self.store: Optional[AppStore] = None
        self.lsf: Optional[Editor] = None
        self.editor_element: Any = None
        self.state: LifecycleState = LifecycleState.UNINITIALIZED

        self._editor_factory: EditorFactory = editor_factory or LSFWrapper
        self._init_task: Optional[asyncio.Task] = None

        self.actions = ActionRegistry(lambda: self.store)
        self.instruments = InstrumentRegistry(self._builtin_instruments(), self._instrument_context)
        self.instruments.prepare(self.config.instruments)

        if autostart:
            self._start()

    def __repr__(self) -> str:
        return f"DataManager(project={self._project_id!r}, mode={self.mode}, state={self.state.value})"

    @staticmethod
    def _builtin_instruments() -> Dict[str, InstrumentBuilder]:
        from datamanager.gui.views.toolbar_instruments import BUILTIN_INSTRUMENTS

        return dict(BUILTIN_INSTRUMENTS)

    def _instrument_context(self) -> InstrumentContext:
        return InstrumentContext(
            store=self.store,
            observer=observer,
            inject=make_inject(lambda: self.store),
            data_manager=self,
        )

    # -----------------------------
    # Configuration
    # -----------------------------
    @property
    def project_id(self) -> Any:
        """Configured project id, or the ``data-project-id`` prop of the root element."""
        if self._project_id is None and self.root is not None:
            props = getattr(self.root, "props", None)
            if isinstance(props, Mapping):
                self._project_id = props.get("data-project-id")
        return self._project_id

    @project_id.setter
    def project_id(self, value: Any) -> None:
        self._project_id = value

    @property
    def is_label_stream(self) -> bool:
        return self.mode == MODE_LABELSTREAM

    @property
    def is_labeling(self) -> bool:
        return self.store.is_labeling if self.store is not None else self.is_label_stream

    def api_config(self) -> APIConfig:
        """APIConfig from the ``api_*`` options; ``project`` is a shared param."""
        endpoints = dict(DEFAULT_ENDPOINTS)
        endpoints.update(self.config.api_endpoints)
        shared: Dict[str, Any] = {"project": self.project_id}
        shared.update(self.config.api_shared_params)
        return APIConfig(
            gateway=self.config.api_gateway or DEFAULT_GATEWAY,
            endpoints=endpoints,
            mock_disabled=self.config.api_mock_disabled,
            common_headers=dict(self.config.api_headers),
            shared_params=shared,
            mocks=dict(self.config.api_mocks),
        )

    def interface_enabled(self, name: str) -> bool:
        if self.store is not None:
            return self.store.interface_enabled(name)
        return bool(self.interfaces.get(name, False))

    # -----------------------------
    # Events
    # -----------------------------
    def on(self, name: str, callback: Callback) -> None:
        self.bus.on(name, callback)

    def off(self, name: str, callback: Optional[Callback] = None) -> None:
        self.bus.off(name, callback)

    def has_handler(self, name: str) -> bool:
        return self.bus.has_handler(name)

    def invoke(self, name: str, *args: Any) -> None:
        self.bus.invoke(name, *args)

    def set_mode(self, mode: str) -> None:
        """Switch mode; ``modeChanged`` fires only when the value changes.

        The view made current by the switch fetches its first page on the
        running loop (see ``AppStore.set_mode``).

        Raises:
            ConfigurationError: ``mode`` is not a known mode.
        """
        validate_mode(mode)
        changed = mode != self.mode
        self.mode = mode
        if self.store is not None:
            self.store.set_mode(mode)
        if changed:
            logger.info(f"mode -> {mode}")
            self.invoke(MODE_CHANGED, mode)

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def _start(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running loop at construction, await init_app() to start")
            return
        self._init_task = loop.create_task(self.init_app())
        self._init_task.add_done_callback(self._on_init_done)

    @staticmethod
    def _on_init_done(task: asyncio.Task) -> None:
        # init_app already logged the failure; retrieve it so asyncio stays quiet
        if not task.cancelled():
            task.exception()

    async def wait_ready(self) -> "DataManager":
        """Await the scheduled ``init_app`` (or run it if nothing was scheduled)."""
        if self._init_task is not None:
            await self._init_task
        elif self.state == LifecycleState.UNINITIALIZED:
            await self.init_app()
        return self

    async def init_app(self) -> AppStore:
        """Build the AppStore, install registered actions and fire ``ready``.

        Raises:
            TransportError: The project, columns or tabs could not be loaded.
        """
        from datamanager.gui.app_create import create_app

        if self.state != LifecycleState.RELOADING:
            self.state = LifecycleState.INITIALIZING
        logger.info(f"initializing DataManager (project={self.project_id!r}, mode={self.mode})")
        try:
            self.store = await create_app(self.root, self)
        except Exception as exc:
            logger.error(f"DataManager initialization failed: {exc}")
            self.state = LifecycleState.UNINITIALIZED
            raise
        self.install_actions()
        self.state = LifecycleState.READY
        self.invoke(READY, self)
        return self.store

    def destroy(self, detach_callbacks: bool = True) -> None:
        """Tear down the state tree and the rendered UI.

        Args:
            detach_callbacks: Also drop every event subscription.
        """
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._init_task = None

        if self.store is not None:
            self.store.destroy()
            self.store = None
        if self.root is not None:
            safe_call(self.root.clear)
        self.editor_element = None

        if detach_callbacks:
            self.bus.clear()
        self.state = LifecycleState.DESTROYED
        logger.info(f"DataManager destroyed (detach_callbacks={detach_callbacks})")

    async def reload(self) -> AppStore:
        """Destroy and rebuild the state tree, keeping subscriptions and actions."""
        self.destroy(detach_callbacks=False)
        self.state = LifecycleState.RELOADING
        return await self.init_app()

    async def aclose(self) -> None:
        self.destroy()
        await self.api.aclose()

    # -----------------------------
    # Actions and instruments
    # -----------------------------
    def add_action(self, action: Action | Mapping[str, Any], callback: ActionCallback) -> Action:
        return self.actions.add(action, callback)

    def remove_action(self, action_id: str) -> None:
        self.actions.remove(action_id)

    def get_action(self, action_id: str) -> Optional[ActionCallback]:
        return self.actions.get(action_id)

    def install_actions(self) -> None:
        self.actions.install()

    def register_instrument(self, name: str, initializer: InstrumentBuilder) -> bool:
        """Register a host instrument; reserved names are logged and skipped."""
        registered = self.instruments.register(name, initializer)
        if registered and self.store is not None:
            self.store.update_instruments()
        return registered

    async def invoke_action(self, action_id: str, view: Optional[View] = None) -> Any:
        """Run an action on the selection of ``view`` (default: current view).

        Host callbacks receive ``(selected_ids, data_manager)``; ids without a
        host callback are sent to the backend ``invokeAction`` endpoint.
        """
        store = self._require_store()
        view = view or store.current_view
        callback = self.get_action(action_id)
        if callback is None:
            return await store.invoke_backend_action(action_id, view)
        result = callback(view.selected, self)
        if inspect.isawaitable(result):
            result = await result
        return result

    # -----------------------------
    # Editor
    # -----------------------------
    def init_lsf(self, element: Any) -> Editor:
        """Create the embedded editor once, bound to the focused task."""
        if self.lsf is None:
            store = self.store
            logger.info("initializing editor")
            self.lsf = self._editor_factory(
                self,
                element,
                task=store.selected_task if store else None,
                annotation=store.selected_annotation if store else None,
                is_label_stream=self.is_label_stream,
                **self.label_studio_options,
            )
        return self.lsf

    async def start_labeling(self) -> bool:
        """Load the focused task into the editor unless it is already shown.

        Returns:
            True if the editor was asked to load a task.
        """
        store = self._require_store()
        task, annotation = store.selected_task, store.selected_annotation
        lsf = self.lsf

        if lsf is not None and lsf.task and task and record_id(lsf.task) == record_id(task):
            return False
        # labelstream mode advances through the editor itself
        if self.is_label_stream or lsf is None or task is None:
            return False

        annotation_id = annotation.get("id") if annotation else store.last_annotation_id(task)
        await lsf.load_task(record_id(task), annotation_id)
        return True

    def destroy_lsf(self) -> None:
        if self.lsf is not None:
            self.lsf.destroy()
        self.lsf = None

    async def open_task(self, item: Record) -> None:
        """Row click: focus ``item`` and show it in the editor."""
        store = self._require_store()
        if store.set_task(item) is None:
            return
        if self.lsf is None and self.editor_element is not None:
            self.init_lsf(self.editor_element)
        await self.start_labeling()

    # -----------------------------
    # API
    # -----------------------------
    async def api_call(self, name: str, params: Optional[Mapping[str, Any]] = None, body: Any = None) -> Any:
        return await self._require_store().api_call(name, params, body)

    def _require_store(self) -> AppStore:
        if self.store is None:
            raise DataManagerError(f"DataManager is not ready (state={self.state.value})")
        return self.store
