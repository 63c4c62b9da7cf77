"""Paginated record store owned by a single View.

The store keeps the materialized window of records (in fetch order), the
backend total, the loading flag and the last transport error. Pages are
requested through an injected async ``loader`` so the store does not know
about HTTP, tabs, ordering or filters.

Fetch cycle:
    idle -> loading -> idle   (success: page appended)
    idle -> loading -> idle   (failure: data unchanged, ``error`` set)

At most one fetch is in flight; a second ``fetch()`` while loading returns
immediately. ``reset()`` bumps a generation counter so that a response for a
request issued before the reset is dropped.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from datamanager.core.errors import ConfigurationError, TransportError
from datamanager.core.fields import PageResult, Record, record_id
from datamanager.core.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE: int = 30

# loader(page, page_size, context) -> PageResult; page is 1-based
PageLoader = Callable[[int, int, Optional[Mapping[str, Any]]], Awaitable[PageResult]]

# handler(store, reason)
StoreChangedHandler = Callable[["DataStore", str], None]


class DataStore:
    """Owner of one View's fetched record window.

    Attributes:
        items: Materialized records in fetch order.
        total: Total number of records reported by the backend.
        loading: True while a page request is in flight.
        has_next_page: False once every record up to ``total`` is materialized.
        error: Last TransportError, cleared when the next fetch starts.
        selected_ids: Multi-selection (checkbox) identifiers.
        selected_id: Identifier of the single selected (labeled) record.
        highlighted_id: Identifier of the highlighted (keyboard focus) record.
    """

    def __init__(self, loader: PageLoader, *, page_size: int = DEFAULT_PAGE_SIZE, name: str = "") -> None:
        if page_size <= 0:
            raise ConfigurationError(f"page_size must be positive, got {page_size}")
        self._loader = loader
        self._page_size = page_size
        self.name = name

        self.items: List[Record] = []
        self.total: int = 0
        self.loading: bool = False
        self.has_next_page: bool = True
        self.error: Optional[TransportError] = None

        self.selected_ids: Set[Any] = set()
        self.selected_id: Any = None
        self.highlighted_id: Any = None

        self._by_id: Dict[Any, Record] = {}
        self._page: int = 0
        self._generation: int = 0
        self._changed_handlers: List[StoreChangedHandler] = []

    def __repr__(self) -> str:
        return (
            f"DataStore(name={self.name!r}, items={len(self.items)}, total={self.total}, "
            f"loading={self.loading}, has_next_page={self.has_next_page})"
        )

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def page(self) -> int:
        """Number of pages applied since the last reset."""
        return self._page

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def selected(self) -> Optional[Record]:
        return self._by_id.get(self.selected_id) if self.selected_id is not None else None

    @property
    def highlighted(self) -> Optional[Record]:
        return self._by_id.get(self.highlighted_id) if self.highlighted_id is not None else None

    def get_item(self, item_id: Any) -> Optional[Record]:
        return self._by_id.get(item_id)

    def has_item(self, item_id: Any) -> bool:
        return item_id in self._by_id

    # Registration
    def on_changed(self, handler: StoreChangedHandler) -> None:
        """Register callback for store changes; called as ``handler(store, reason)``."""
        if handler not in self._changed_handlers:
            self._changed_handlers.append(handler)

    def off_changed(self, handler: StoreChangedHandler) -> None:
        try:
            self._changed_handlers.remove(handler)
        except ValueError:
            pass

    def _notify(self, reason: str) -> None:
        for handler in list(self._changed_handlers):
            try:
                handler(self, reason)
            except Exception:
                logger.exception(f"Error in store changed handler (reason={reason})")

    async def fetch(self, context: Optional[Mapping[str, Any]] = None) -> bool:
        """Request the next page and append it.

        Args:
            context: Free-form request context forwarded to the loader
                (e.g. ``{"interaction": "scroll"}``).

        Returns:
            True if a page was applied. False if the call was a no-op (already
            loading), the response was stale, or the request failed (see ``error``).
        """
        if self.loading:
            logger.debug(f"[store {self.name}] fetch skipped, request already in flight")
            return False

        generation = self._generation
        page = self._page + 1
        self.loading = True
        self.error = None
        self._notify("loading")

        try:
            result = await self._loader(page, self._page_size, context)
        except TransportError as exc:
            if generation != self._generation:
                logger.debug(f"[store {self.name}] dropping failure of stale page {page}: {exc}")
                return False
            logger.error(f"[store {self.name}] fetching page {page} failed: {exc}")
            self.loading = False
            self.error = exc
            self._notify("error")
            return False
        except BaseException:
            # cancellation or a loader bug: leave data untouched, re-raise
            if generation == self._generation:
                self.loading = False
                self._notify("idle")
            raise

        if generation != self._generation:
            logger.debug(
                f"[store {self.name}] dropping stale page {page} "
                f"(generation {generation} != {self._generation})"
            )
            return False

        self._apply_page(page, result)
        self.loading = False
        self._notify("loaded")
        return True

    def _apply_page(self, page: int, result: PageResult) -> None:
        for record in result.records:
            self.items.append(record)
            self._by_id[record_id(record)] = record

        total = max(int(result.total), 0)
        if total < len(self.items):
            logger.warning(
                f"[store {self.name}] backend total {total} is below materialized count {len(self.items)}"
            )
            total = len(self.items)
        if not result.records and len(self.items) < total:
            # an empty page before the end would make every load_more a no-op request
            logger.warning(
                f"[store {self.name}] empty page {page} with {total - len(self.items)} records outstanding"
            )
            total = len(self.items)

        self.total = total
        self.has_next_page = len(self.items) < self.total
        self._page = page
        logger.debug(
            f"[store {self.name}] applied page {page}: items={len(self.items)} total={self.total} "
            f"has_next_page={self.has_next_page}"
        )

    def reset(self) -> None:
        """Drop the window; the next fetch starts again from page 1."""
        self._generation += 1
        self.items = []
        self._by_id = {}
        self.total = 0
        self.has_next_page = True
        self.loading = False
        self.error = None
        self._page = 0
        self._notify("reset")

    def update_item(self, record: Record) -> bool:
        """Replace a materialized record (matched by id) in place.

        Returns:
            True if the record was present and replaced.
        """
        rid = record_id(record)
        if rid not in self._by_id:
            return False
        for i, existing in enumerate(self.items):
            if record_id(existing) == rid:
                self.items[i] = record
                break
        self._by_id[rid] = record
        self._notify("updated")
        return True

    def remove_item(self, item_id: Any) -> bool:
        """Remove a materialized record; selection is reconciled by the View."""
        if item_id not in self._by_id:
            return False
        self.items = [r for r in self.items if record_id(r) != item_id]
        del self._by_id[item_id]
        self.total = max(self.total - 1, len(self.items))
        self.has_next_page = len(self.items) < self.total
        if self.selected_id == item_id:
            self.selected_id = None
        if self.highlighted_id == item_id:
            self.highlighted_id = None
        self._notify("removed")
        return True

    def set_selected(self, item_id: Any) -> None:
        self.selected_id = item_id
        self._notify("focus")

    def set_highlighted(self, item_id: Any) -> None:
        self.highlighted_id = item_id
        self._notify("focus")

    def notify_selection(self) -> None:
        self._notify("selection")

    def destroy(self) -> None:
        """Invalidate in-flight requests and release records and handlers."""
        self._generation += 1
        self.items = []
        self._by_id = {}
        self.loading = False
        self.selected_ids = set()
        self._changed_handlers.clear()
