"""Field, column, ordering and filter descriptors.

Records themselves are plain dicts as returned by the backend; the only key
the engine relies on is the record id (``RECORD_ID_KEY``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

Record = Dict[str, Any]

RECORD_ID_KEY = "id"


def record_id(record: Mapping[str, Any]) -> Any:
    """Return the stable identifier of a backend record."""
    return record.get(RECORD_ID_KEY)


@dataclass(frozen=True)
class Field:
    """Column descriptor from the backend schema.

    Attributes:
        id: Unique field id (also the record key holding the value).
        title: Human readable header.
        type: Backend value type (``"String"``, ``"Number"``, ``"Datetime"``, ...).
        parent_id: Id of the grouping parent column (e.g. ``"data"``), if any.
        help_text: Optional tooltip text.
        hidden: Hidden by default in the backend schema.
        sortable: Whether ordering by this field is allowed.
    """

    id: str
    title: str = ""
    type: str = "String"
    parent_id: Optional[str] = None
    help_text: Optional[str] = None
    hidden: bool = False
    sortable: bool = True

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Field":
        """Build a Field from a backend column dict.

        Accepts both the backend keys (``parent``, ``help``) and the
        attribute names (``parent_id``, ``help_text``). Unknown keys are ignored.
        """
        field_id = d.get("id")
        if field_id is None:
            raise ValueError("column must provide an 'id'")
        parent = d.get("parent_id", d.get("parent"))
        if isinstance(parent, Mapping):
            parent = parent.get("id")
        return cls(
            id=str(field_id),
            title=str(d.get("title") or field_id),
            type=str(d.get("type") or "String"),
            parent_id=str(parent) if parent is not None else None,
            help_text=d.get("help_text", d.get("help")),
            hidden=bool(d.get("hidden", False)),
            sortable=bool(d.get("sortable", True)),
        )


@dataclass
class Column:
    """Presentation-ready column: a visible Field plus caller decorations."""

    field: Field
    width: Optional[int] = None
    renderer: Optional[Callable[..., Any]] = None
    style: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.field.id

    @property
    def title(self) -> str:
        return self.field.title

    def to_table_column(self) -> Dict[str, Any]:
        """Column dict in the shape expected by ``nicegui.ui.table``."""
        col: Dict[str, Any] = {
            "name": self.field.id,
            "label": self.field.title,
            "field": self.field.id,
            "sortable": self.field.sortable,
            "align": "left",
        }
        if self.width is not None:
            col["style"] = f"width: {self.width}px; min-width: {self.width}px; max-width: {self.width}px"
        col.update(self.extra)
        return col


@dataclass(frozen=True)
class Ordering:
    """Current sort key of a View."""

    field_id: str
    descending: bool = False

    def flipped(self) -> "Ordering":
        return Ordering(self.field_id, not self.descending)

    def as_param(self) -> str:
        """Backend ordering parameter: ``field`` or ``-field``."""
        return f"-{self.field_id}" if self.descending else self.field_id


@dataclass(frozen=True)
class Filter:
    """Column-level filter passed through to the backend."""

    field_id: str
    operator: str = "contains"
    value: Any = None

    def as_dict(self) -> Dict[str, Any]:
        return {"filter": self.field_id, "operator": self.operator, "value": self.value}


@dataclass(frozen=True)
class PageResult:
    """One page of records returned by the backend."""

    records: List[Record]
    total: int
