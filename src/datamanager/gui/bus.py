"""Name-keyed event bus for DataManager lifecycle events.

Hosts attach callbacks with ``on(name, callback)``; the DataManager fires them
with ``invoke(name, *args)``. Each DataManager owns one EventBus, so
subscriptions never leak between instances.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from datamanager.core.utils.logging import get_logger

logger = get_logger(__name__)

Callback = Callable[..., Any]


@dataclass(frozen=True, slots=True)
class BusConfig:
    """Configuration for EventBus behavior.

    Attributes:
        trace: If True, log all invokes and handler executions.
    """

    trace: bool = True


def _name_of(callback: Callback) -> str:
    return getattr(callback, "__qualname__", repr(callback))


class EventBus:
    """Multicast dispatch of host callbacks keyed by event name.

    Handlers for one name form an ordered set: registering the same callback
    twice keeps a single entry, delivery follows registration order, and a
    handler that raises is logged without stopping delivery to the rest.
    Handlers may be coroutine functions; their coroutines are scheduled on
    the running loop.

    Attributes:
        _config: Bus configuration (trace mode).
        _subs: Map from event name to an insertion-ordered set of callbacks.
        _owner: Label used in log lines.
    """

    def __init__(self, owner: str = "datamanager", config: BusConfig | None = None) -> None:
        self._config: BusConfig = config or BusConfig()
        self._subs: Dict[str, Dict[Callback, None]] = {}
        self._owner: str = owner
        self._pending: Set[asyncio.Task] = set()

    def on(self, name: str, callback: Callback) -> None:
        """Subscribe ``callback`` to ``name``; a repeated subscription is a no-op."""
        handlers = self._subs.setdefault(name, {})
        if callback in handlers:
            logger.debug(f"[bus] {_name_of(callback)} already subscribed to {name!r}, skipping")
            return
        handlers[callback] = None
        logger.debug(f"[bus] subscribed {_name_of(callback)} to {name!r} (owner={self._owner}, total={len(handlers)})")

    def off(self, name: str, callback: Optional[Callback] = None) -> None:
        """Remove ``callback`` from ``name``, or every handler of ``name`` if None.

        Safe to call for unknown names or callbacks.
        """
        handlers = self._subs.get(name)
        if not handlers:
            return
        if callback is None:
            handlers.clear()
        else:
            handlers.pop(callback, None)
        logger.debug(f"[bus] off {name!r} (owner={self._owner}, remaining={len(handlers)})")

    def has_handler(self, name: str) -> bool:
        return bool(self._subs.get(name))

    def handlers(self, name: str) -> List[Callback]:
        return list(self._subs.get(name, {}))

    def invoke(self, name: str, *args: Any) -> None:
        """Deliver ``args`` to every handler of ``name`` in registration order."""
        handlers = self.handlers(name)

        if self._config.trace:
            logger.info(f"[bus] invoke {name!r} (owner={self._owner}, handlers={len(handlers)})")

        for callback in handlers:
            if self._config.trace:
                logger.info(f"[bus] -> {name!r} handled by {_name_of(callback)}")
            try:
                result = callback(*args)
            except Exception:
                logger.exception(f"[bus] Exception in handler {_name_of(callback)} for {name!r}")
                continue
            if inspect.isawaitable(result):
                self._schedule(name, callback, result)

    def _schedule(self, name: str, callback: Callback, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"[bus] no running loop for async handler {_name_of(callback)} of {name!r}")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error(
                    f"[bus] Exception in async handler {_name_of(callback)} for {name!r}",
                    exc_info=exc,
                )

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait until every scheduled async handler has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        """Remove every subscription from this bus."""
        count = sum(len(h) for h in self._subs.values())
        for handlers in self._subs.values():
            handlers.clear()
        self._subs.clear()
        logger.debug(f"[bus] cleared {count} subscriptions (owner={self._owner})")
