"""Embedded labeling editor boundary.

The DataManager treats the editor as an opaque component with a
``load_task`` / ``destroy`` lifecycle. ``LSFWrapper`` is the default
implementation: it fetches the task through the AppStore (so the record in
the table is refreshed as well) and renders a read-only summary of it into
the mount element. Hosts plug in a real editor through
``DataManager(editor_factory=...)``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol

from nicegui import ui

from datamanager.core.fields import Record, record_id
from datamanager.core.utils.logging import get_logger
from datamanager.gui.client_utils import safe_call

if TYPE_CHECKING:
    from datamanager.gui.data_manager import DataManager

logger = get_logger(__name__)


class Editor(Protocol):
    """What the DataManager needs from an embedded editor."""

    task: Optional[Record]
    annotation_id: Any

    async def load_task(self, task_id: Any, annotation_id: Any = None) -> None: ...

    def destroy(self) -> None: ...


class LSFWrapper:
    """Default editor: owns the mount element and the currently loaded task.

    Args:
        dm: Owning DataManager (used for store access and next-task requests).
        element: NiceGUI container the editor renders into, or None (headless).
        task: Task selected when the editor was created.
        annotation: Annotation selected when the editor was created.
        is_label_stream: True when created in labelstream mode.
        **options: Opaque editor options (``DMConfig.label_studio``).
    """

    def __init__(
        self,
        dm: "DataManager",
        element: Any,
        *,
        task: Optional[Record] = None,
        annotation: Optional[Dict[str, Any]] = None,
        is_label_stream: bool = False,
        **options: Any,
    ) -> None:
        self._dm = dm
        self._element = element
        self.task: Optional[Record] = task
        self.annotation_id: Any = annotation.get("id") if annotation else None
        self.is_label_stream = is_label_stream
        self.options: Dict[str, Any] = dict(options)
        self.destroyed = False
        self._render()

    def __repr__(self) -> str:
        task_id = record_id(self.task) if self.task else None
        return f"LSFWrapper(task={task_id!r}, annotation={self.annotation_id!r}, stream={self.is_label_stream})"

    async def load_task(self, task_id: Any, annotation_id: Any = None) -> None:
        """Fetch ``task_id`` and show it; ``annotation_id`` selects the annotation."""
        store = self._dm.store
        if store is None:
            logger.warning(f"load_task({task_id!r}) before the app was initialized")
            return
        record = await store.load_task(task_id)
        if record is None:
            return
        self.task = record
        self.annotation_id = annotation_id
        logger.info(f"editor loaded task {task_id!r} (annotation={annotation_id!r})")
        self._render()

    async def load_next_task(self) -> None:
        """Labelstream mode: ask the backend for the next task and load it."""
        payload = await self._dm.api_call("nextTask")
        if not payload:
            logger.info("label stream exhausted, no next task")
            self.task = None
            self.annotation_id = None
            self._render()
            return
        store = self._dm.store
        if store is not None:
            store.set_task(payload)
        await self.load_task(record_id(payload))

    def destroy(self) -> None:
        if self._element is not None:
            safe_call(self._element.clear)
        self.task = None
        self.annotation_id = None
        self.destroyed = True

    def _render(self) -> None:
        if self._element is None or self.destroyed:
            return
        safe_call(self._element.clear)
        with self._element:
            if self.task is None:
                ui.label("No task selected").classes("text-sm text-gray-500")
                return
            ui.label(f"Task #{record_id(self.task)}").classes("text-lg font-semibold")
            if self.annotation_id is not None:
                ui.label(f"Annotation #{self.annotation_id}").classes("text-sm")
            data = self.task.get("data")
            if isinstance(data, dict):
                for key, value in data.items():
                    ui.label(f"{key}: {value}").classes("text-sm break-all")
