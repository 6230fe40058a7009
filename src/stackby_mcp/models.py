# Stackby MCP Server
# File: models.py
# Version: v1

"""Domain models used by the Stackby MCP server."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Column types accepted by the column-create endpoint. Reads never validate
# against this list; it only feeds tool descriptions.
COLUMN_TYPES = (
    "shortText",
    "longText",
    "number",
    "checkbox",
    "dateAndTime",
    "time",
    "singleOption",
    "multipleOptions",
    "email",
    "url",
    "phoneNumber",
    "rating",
    "duration",
    "autoNumber",
    "createdTime",
    "updatedTime",
    "createdBy",
    "updatedBy",
    "attachment",
    "link",
    "lookup",
    "lookupCount",
    "aggregation",
    "formula",
    "checkList",
    "location",
    "barcode",
    "signature",
)


@dataclass
class Workspace:
    """A top-level grouping of stacks."""

    id: str
    name: str


@dataclass
class Stack:
    """A workspace-scoped container of tables (a "base")."""

    stack_id: str
    workspace_id: str
    stack_name: str
    color: Optional[str] = None
    icon: Optional[str] = None
    created_at: Optional[str] = None

    # Filled in by the all-workspaces listing.
    workspace_name: Optional[str] = None


@dataclass
class Table:
    id: str
    name: str


@dataclass
class TableField:
    """A table column."""

    id: str
    name: str
    type: str
    key: Optional[str] = None
    label: Optional[str] = None


@dataclass
class TableView:
    id: str
    name: str
    table_id: str


@dataclass
class TableDescription:
    """Table schema as returned by the describe endpoint."""

    id: str
    name: str
    fields: List[TableField] = field(default_factory=list)
    views: List[TableView] = field(default_factory=list)


@dataclass
class TableRecord:
    """One row. ``field`` maps column name to value and is never interpreted."""

    id: str
    field: Dict[str, Any]


@dataclass
class SearchResult:
    """Matches from the search endpoint, as parallel lists."""

    row_ids: List[str] = field(default_factory=list)
    row_names: List[str] = field(default_factory=list)
    fields: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class DeletedRecord:
    id: str
    deleted: bool


@dataclass
class RowListOptions:
    """Query options for listing rows."""

    max_records: Optional[int] = None
    offset: int = 0
    row_ids: Optional[List[str]] = None
    view: Optional[str] = None
    filter: Optional[str] = None
    sort: Optional[str] = None
    latest: Optional[str] = None
    filter_by_formula: Optional[str] = None
    conjuction: Optional[str] = None
