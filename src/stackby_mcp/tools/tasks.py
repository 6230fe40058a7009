# Stackby MCP Server
# File: tools/tasks.py
# Version: v1
#
# NOTE: This module is the single place where we define the behaviour that
# is exposed as MCP tools. The transports (stdio / http) simply call
# `register_tools(server, config)` to wire these up.
#
# Every core task receives the process config and, in HTTP mode, the
# caller's RequestContext as plain arguments. Credentials are resolved per
# call and handed to the client; nothing is read from shared state.

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Dict, List, Optional, Sequence

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult, TextContent
from pydantic import BaseModel, Field

from ..auth import Credentials, resolve_credentials
from ..client import MAX_BATCH_SIZE, StackbyClient
from ..config import StackbyConfig
from ..context import RequestContext
from ..errors import MissingCredentialsError, StackbyError
from ..models import COLUMN_TYPES, RowListOptions

logger = logging.getLogger(__name__)

SETUP_GUIDANCE = (
    "STACKBY_API_KEY is not set. Add it to your MCP config (e.g. the env block "
    "of your client's mcp.json: env.STACKBY_API_KEY) with your Stackby API key "
    "or Personal Access Token (PAT). Hosted clients send the X-Stackby-API-Key "
    "header instead."
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


class RecordUpdate(BaseModel):
    """One row change for update_records."""

    id: str = Field(description="Record (row) ID")
    fields: Dict[str, Any] = Field(
        description="Field values to set (column name -> value)"
    )


def _text(text: str, is_error: bool = False) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error)


def _error(text: str) -> CallToolResult:
    return _text(text, is_error=True)


def _clean(value: Optional[str]) -> Optional[str]:
    """Trim an identifier; empty-after-trim counts as missing."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _dumps(value: Any, indent: Optional[int] = None) -> str:
    return json.dumps(value, ensure_ascii=False, indent=indent, default=str)


def _make_client(credentials: Credentials, config: StackbyConfig) -> StackbyClient:
    """Create a StackbyClient for one call.

    Tests replace this with a factory returning a fake client.
    """
    return StackbyClient(credentials=credentials, config=config)


def _client_for(
    config: StackbyConfig,
    request_context: Optional[RequestContext],
) -> StackbyClient:
    """Resolve credentials and build a client; raises MissingCredentialsError."""
    credentials = resolve_credentials(config, request_context)
    return _make_client(credentials, config)


# ---------------------------------------------------------------------------
# Core async tasks (library-style)
# ---------------------------------------------------------------------------


async def list_workspaces(
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
) -> CallToolResult:
    try:
        credentials = resolve_credentials(config, request_context)
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)

    try:
        workspaces = await _make_client(credentials, config).get_workspaces()
    except StackbyError as exc:
        return _error(
            f"Failed to list workspaces: {exc}. "
            f"API base URL in use: {credentials.base_url}."
        )

    if not workspaces:
        lines = ["No workspaces found."]
    else:
        lines = [f"- {w.name} (id: {w.id})" for w in workspaces]
    return _text(f"Workspaces ({len(workspaces)}):\n" + "\n".join(lines))


async def list_stacks(
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
) -> CallToolResult:
    try:
        credentials = resolve_credentials(config, request_context)
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)

    try:
        stacks = await _make_client(credentials, config).get_all_stacks()
    except StackbyError as exc:
        return _error(
            f"Failed to list stacks: {exc}. "
            f"API base URL in use: {credentials.base_url}."
        )

    if not stacks:
        lines = ["No stacks found."]
    else:
        lines = [
            f"- {s.stack_name} (id: {s.stack_id}, workspace: {s.workspace_name or s.workspace_id})"
            for s in stacks
        ]
    return _text(f"Stacks ({len(stacks)}):\n" + "\n".join(lines))


async def list_tables(
    stack_id: Optional[str],
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
) -> CallToolResult:
    sid = _clean(stack_id)
    if not sid:
        return _error("stackId is required. Use list_stacks to get stack IDs.")

    try:
        client = _client_for(config, request_context)
        tables = await client.get_tables(sid)
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)
    except StackbyError as exc:
        return _error(f"Failed to list tables: {exc}. Check stackId and API access.")

    if not tables:
        lines = ["No tables found in this stack."]
    else:
        lines = [f"- {t.name} (id: {t.id})" for t in tables]
    return _text(f"Tables in stack {sid} ({len(tables)}):\n" + "\n".join(lines))


async def describe_table(
    stack_id: Optional[str],
    table_id: Optional[str],
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
) -> CallToolResult:
    sid, tid = _clean(stack_id), _clean(table_id)
    if not sid or not tid:
        return _error(
            "stackId and tableId are required. "
            "Use list_stacks and list_tables to get IDs."
        )

    try:
        client = _client_for(config, request_context)
        schema = await client.describe_table(sid, tid)
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)
    except StackbyError as exc:
        return _error(
            f"Failed to describe table: {exc}. Check stackId, tableId, and API access."
        )

    field_lines = [f"  - {f.name} (id: {f.id}, type: {f.type})" for f in schema.fields]
    view_lines = [f"  - {v.name} (id: {v.id})" for v in schema.views]

    text = "\n".join(
        [
            f"Table: {schema.name} (id: {schema.id})",
            "",
            "Fields:",
            *(field_lines or ["(no fields)"]),
            "",
            "Views:",
            *(view_lines or ["(no views)"]),
        ]
    )
    return _text(text)


async def list_records(
    stack_id: Optional[str],
    table_id: Optional[str],
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
    max_records: Optional[int] = None,
    offset: Optional[int] = None,
    view_id: Optional[str] = None,
) -> CallToolResult:
    sid, tid = _clean(stack_id), _clean(table_id)
    if not sid or not tid:
        return _error(
            "stackId and tableId are required. "
            "Use list_stacks and list_tables to get IDs."
        )

    options = RowListOptions(
        max_records=max_records if max_records is not None else 100,
        offset=offset or 0,
        view=_clean(view_id),
    )

    try:
        client = _client_for(config, request_context)
        records = await client.get_row_list(sid, tid, options)
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)
    except StackbyError as exc:
        return _error(
            f"Failed to list records: {exc}. Check stackId, tableId, and API access."
        )

    if not records:
        lines = ["No records found."]
    else:
        lines = [f"- id: {r.id} | {_dumps(r.field)}" for r in records]
    return _text("\n".join([f"Records in table {tid} ({len(records)}):", "", *lines]))


async def search_records(
    stack_id: Optional[str],
    table_id: Optional[str],
    search_term: Optional[str],
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
    field_ids: Optional[Sequence[str]] = None,
    max_records: Optional[int] = None,
) -> CallToolResult:
    sid, tid, term = _clean(stack_id), _clean(table_id), _clean(search_term)
    if not sid or not tid or not term:
        return _error("stackId, tableId, and searchTerm are required.")

    # The search endpoint takes a single column; only the first id is used.
    column_id = _clean(field_ids[0]) if field_ids else None

    try:
        client = _client_for(config, request_context)
        result = await client.search_records(
            sid, tid, term, column_id=column_id, max_records=max_records
        )
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)
    except StackbyError as exc:
        return _error(
            f"Failed to search records: {exc}. Check stackId, tableId, and API access."
        )

    count = len(result.row_ids)
    if count == 0:
        lines = ["No matching records."]
    else:
        lines = []
        for i, row_id in enumerate(result.row_ids):
            name = result.row_names[i] if i < len(result.row_names) else ""
            lines.append(f"- id: {row_id} | {name}")

    suffix = "" if count == 1 else "es"
    header = f'Search "{term}" in table {tid} ({count} match{suffix}):'
    return _text("\n".join([header, "", *lines]))


async def get_record(
    stack_id: Optional[str],
    table_id: Optional[str],
    record_id: Optional[str],
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
) -> CallToolResult:
    sid, tid, rid = _clean(stack_id), _clean(table_id), _clean(record_id)
    if not sid or not tid or not rid:
        return _error("stackId, tableId, and recordId are required.")

    try:
        client = _client_for(config, request_context)
        record = await client.get_record(sid, tid, rid)
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)
    except StackbyError as exc:
        return _error(
            f"Failed to get record: {exc}. "
            "Check stackId, tableId, recordId, and API access."
        )

    if record is None:
        return _text(f"No record found with id {rid} in table {tid}.")

    return _text("\n".join([f"Record {record.id}:", "", _dumps(record.field, indent=2)]))


async def create_record(
    stack_id: Optional[str],
    table_id: Optional[str],
    fields: Any,
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
) -> CallToolResult:
    """Create one row. ``fields`` is forwarded verbatim, keyed by column name."""
    sid, tid = _clean(stack_id), _clean(table_id)
    if not sid or not tid:
        return _error("stackId and tableId are required.")
    if not isinstance(fields, dict):
        return _error("fields must be an object of column names to values.")

    try:
        client = _client_for(config, request_context)
        records = await client.create_row(sid, tid, fields)
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)
    except StackbyError as exc:
        return _error(
            f"Failed to create record: {exc}. "
            "Check stackId, tableId, and field names (use describe_table)."
        )

    if not records:
        return _error("No record was created. Check table schema and field names.")

    created = records[0]
    return _text(
        "\n".join([f"Created record: {created.id}", "", _dumps(created.field, indent=2)])
    )


async def update_records(
    stack_id: Optional[str],
    table_id: Optional[str],
    records: Sequence[Any],
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
) -> CallToolResult:
    sid, tid = _clean(stack_id), _clean(table_id)
    if not sid or not tid:
        return _error("stackId and tableId are required.")

    items: List[Dict[str, Any]] = []
    for record in records or []:
        if isinstance(record, RecordUpdate):
            items.append({"id": record.id, "fields": record.fields})
        elif isinstance(record, dict):
            items.append({"id": record.get("id"), "fields": record.get("fields")})
        else:
            return _error("Each record must be an object with id and fields.")

    if not 1 <= len(items) <= MAX_BATCH_SIZE:
        return _error(
            f"update_records takes between 1 and {MAX_BATCH_SIZE} records "
            f"(got {len(items)})."
        )
    for item in items:
        item["id"] = _clean(item["id"])
        if not item["id"]:
            return _error("Every record needs a non-empty id.")
        if not isinstance(item["fields"], dict):
            return _error("fields must be an object of column names to values.")

    try:
        client = _client_for(config, request_context)
        updated = await client.update_rows(sid, tid, items)
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)
    except StackbyError as exc:
        return _error(
            f"Failed to update records: {exc}. "
            "Check stackId, tableId, record IDs, and field names."
        )

    lines = [f"- {r.id}: {_dumps(r.field)}" for r in updated]
    return _text("\n".join([f"Updated {len(updated)} record(s):", "", *lines]))


async def delete_records(
    stack_id: Optional[str],
    table_id: Optional[str],
    record_ids: Sequence[str],
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
) -> CallToolResult:
    sid, tid = _clean(stack_id), _clean(table_id)
    if not sid or not tid:
        return _error("stackId and tableId are required.")

    ids = list(record_ids or [])
    if not 1 <= len(ids) <= MAX_BATCH_SIZE:
        return _error(
            f"delete_records takes between 1 and {MAX_BATCH_SIZE} record IDs "
            f"(got {len(ids)})."
        )
    cleaned = [_clean(rid) for rid in ids]
    if not all(cleaned):
        return _error("Record IDs must be non-empty.")

    try:
        client = _client_for(config, request_context)
        deleted = await client.delete_rows(sid, tid, cleaned)
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)
    except StackbyError as exc:
        return _error(
            f"Failed to delete records: {exc}. Check stackId, tableId, and record IDs."
        )

    lines = [f"- {d.id}: deleted={'true' if d.deleted else 'false'}" for d in deleted]
    return _text("\n".join([f"Deleted {len(deleted)} record(s):", "", *lines]))


async def create_table(
    stack_id: Optional[str],
    name: Optional[str],
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
) -> CallToolResult:
    sid, table_name = _clean(stack_id), _clean(name)
    if not sid or not table_name:
        return _error("stackId and name are required.")

    try:
        client = _client_for(config, request_context)
        result = await client.create_table(sid, table_name)
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)
    except StackbyError as exc:
        return _error(f"Failed to create table: {exc}. Check stackId and plan limits.")

    table_id = result.get("tableId") or result.get("id") or "unknown"
    return _text(f"Created table: {table_name}\nTable ID: {table_id}")


async def create_field(
    stack_id: Optional[str],
    table_id: Optional[str],
    name: Optional[str],
    column_type: Optional[str],
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
    view_id: Optional[str] = None,
    options: Optional[Sequence[str]] = None,
) -> CallToolResult:
    """Create a column; without ``view_id`` (``viewId`` on the wire) the table's first view is used."""
    sid, tid = _clean(stack_id), _clean(table_id)
    column_name, col_type = _clean(name), _clean(column_type)
    if not sid or not tid or not column_name or not col_type:
        return _error("stackId, tableId, name, and columnType are required.")

    try:
        client = _client_for(config, request_context)

        view = _clean(view_id)
        if not view:
            views = await client.get_table_views(sid, tid)
            view = views[0].id if views else ""

        result = await client.create_column(
            sid,
            tid,
            column_name,
            col_type,
            view_id=view,
            options=list(options) if options else None,
        )
    except MissingCredentialsError:
        return _error(SETUP_GUIDANCE)
    except StackbyError as exc:
        return _error(
            f"Failed to create field: {exc}. "
            "Check stackId, tableId, name, columnType (use describe_table for types)."
        )

    column_id = result.get("columnId") or result.get("id") or "unknown"
    return _text(f"Created column: {column_name}\nColumn ID: {column_id}\nType: {col_type}")


# ---------------------------------------------------------------------------
# MCP tool registration
# ---------------------------------------------------------------------------


def request_context_from(ctx: Optional[Context]) -> Optional[RequestContext]:
    """Credentials sent with the HTTP request that triggered this tool call.

    Returns None in stdio mode, where there is no HTTP request and the
    process config supplies the key.
    """
    if ctx is None:
        return None
    try:
        request = ctx.request_context.request
    except ValueError:
        # Called outside an MCP request (e.g. FastMCP.call_tool in-process).
        return None
    if request is None or not hasattr(request, "headers"):
        return None
    return RequestContext.from_headers(request.headers)


# Argument names below are the public tool schema (camelCase, as existing
# clients send them); the core tasks above keep Python names.
StackId = Annotated[str, Field(description="Stack ID (from list_stacks)")]
TableId = Annotated[str, Field(description="Table ID (from list_tables)")]


def register_tools(server: Any, config: StackbyConfig) -> None:
    """Register MCP tools on a FastMCP-like instance."""
    if server is None or not hasattr(server, "tool"):
        raise ValueError(
            "register_tools(server, config) expects an MCP Server-like object "
            "that exposes a .tool() decorator."
        )

    @server.tool(
        name="list_workspaces",
        description="List Stackby workspaces the user can access. Requires STACKBY_API_KEY (or PAT).",
        structured_output=False,
    )
    async def mcp_list_workspaces(ctx: Context) -> CallToolResult:
        return await list_workspaces(config, request_context_from(ctx))

    @server.tool(
        name="list_stacks",
        description="List Stackby stacks (bases) across all accessible workspaces.",
        structured_output=False,
    )
    async def mcp_list_stacks(ctx: Context) -> CallToolResult:
        return await list_stacks(config, request_context_from(ctx))

    @server.tool(
        name="list_tables",
        description="List tables in a Stackby stack. Use list_stacks first to get stack IDs.",
        structured_output=False,
    )
    async def mcp_list_tables(stackId: StackId, ctx: Context) -> CallToolResult:
        return await list_tables(stackId, config, request_context_from(ctx))

    @server.tool(
        name="describe_table",
        description=(
            "Get table schema: name, fields (columns with id, name, type) and views. "
            "Use list_tables to get stackId and tableId."
        ),
        structured_output=False,
    )
    async def mcp_describe_table(
        stackId: StackId, tableId: TableId, ctx: Context
    ) -> CallToolResult:
        return await describe_table(stackId, tableId, config, request_context_from(ctx))

    @server.tool(
        name="list_records",
        description="List rows (records) in a table. Use list_stacks and list_tables to get IDs.",
        structured_output=False,
    )
    async def mcp_list_records(
        stackId: StackId,
        tableId: TableId,
        ctx: Context,
        maxRecords: Annotated[
            Optional[int], Field(description="Max records to return (1-100, default 100)")
        ] = None,
        offset: Annotated[
            Optional[int], Field(description="Number of records to skip (default 0)")
        ] = None,
        viewId: Annotated[
            Optional[str], Field(description="Optional view ID to list records from")
        ] = None,
    ) -> CallToolResult:
        return await list_records(
            stackId,
            tableId,
            config,
            request_context_from(ctx),
            max_records=maxRecords,
            offset=offset,
            view_id=viewId,
        )

    @server.tool(
        name="search_records",
        description=(
            "Search for rows containing text in a table. Searches the first column "
            "when fieldIds is not provided."
        ),
        structured_output=False,
    )
    async def mcp_search_records(
        stackId: StackId,
        tableId: TableId,
        searchTerm: Annotated[str, Field(description="Text to search for")],
        ctx: Context,
        fieldIds: Annotated[
            Optional[List[str]],
            Field(description="Optional column IDs to search in (first column if omitted)"),
        ] = None,
        maxRecords: Annotated[
            Optional[int], Field(description="Max records to return (default 100)")
        ] = None,
    ) -> CallToolResult:
        return await search_records(
            stackId,
            tableId,
            searchTerm,
            config,
            request_context_from(ctx),
            field_ids=fieldIds,
            max_records=maxRecords,
        )

    @server.tool(
        name="get_record",
        description="Get a single row (record) by id. Use list_records or search_records to get IDs.",
        structured_output=False,
    )
    async def mcp_get_record(
        stackId: StackId,
        tableId: TableId,
        recordId: Annotated[str, Field(description="Record (row) ID")],
        ctx: Context,
    ) -> CallToolResult:
        return await get_record(
            stackId, tableId, recordId, config, request_context_from(ctx)
        )

    @server.tool(
        name="create_record",
        description=(
            "Create a new row (record) in a table. Fields are keyed by column name; "
            "use describe_table to get column names."
        ),
        structured_output=False,
    )
    async def mcp_create_record(
        stackId: StackId,
        tableId: TableId,
        fields: Annotated[
            Dict[str, Any],
            Field(description='Field values keyed by column name, e.g. {"Name": "Task 1"}'),
        ],
        ctx: Context,
    ) -> CallToolResult:
        return await create_record(
            stackId, tableId, fields, config, request_context_from(ctx)
        )

    @server.tool(
        name="update_records",
        description=(
            f"Update existing rows. Provide an array of {{id, fields}}; at most "
            f"{MAX_BATCH_SIZE} records per request."
        ),
        structured_output=False,
    )
    async def mcp_update_records(
        stackId: StackId,
        tableId: TableId,
        records: Annotated[
            List[RecordUpdate],
            Field(min_length=1, max_length=MAX_BATCH_SIZE, description="Records to update"),
        ],
        ctx: Context,
    ) -> CallToolResult:
        return await update_records(
            stackId, tableId, records, config, request_context_from(ctx)
        )

    @server.tool(
        name="delete_records",
        description=(
            f"Soft-delete rows (records) by ID, at most {MAX_BATCH_SIZE} per request."
        ),
        structured_output=False,
    )
    async def mcp_delete_records(
        stackId: StackId,
        tableId: TableId,
        recordIds: Annotated[
            List[str],
            Field(
                min_length=1,
                max_length=MAX_BATCH_SIZE,
                description="Record (row) IDs to delete",
            ),
        ],
        ctx: Context,
    ) -> CallToolResult:
        return await delete_records(
            stackId, tableId, recordIds, config, request_context_from(ctx)
        )

    @server.tool(
        name="create_table",
        description="Create a new table in a stack. Use list_stacks to get stackId.",
        structured_output=False,
    )
    async def mcp_create_table(
        stackId: StackId,
        name: Annotated[str, Field(description="Table name")],
        ctx: Context,
    ) -> CallToolResult:
        return await create_table(stackId, name, config, request_context_from(ctx))

    @server.tool(
        name="create_field",
        description=(
            "Create a new column (field) in a table. For singleOption/multipleOptions "
            "pass an options array. Known column types: " + ", ".join(COLUMN_TYPES) + "."
        ),
        structured_output=False,
    )
    async def mcp_create_field(
        stackId: StackId,
        tableId: TableId,
        name: Annotated[str, Field(description="Column name")],
        columnType: Annotated[
            str, Field(description="Column type, e.g. shortText, number, singleOption")
        ],
        ctx: Context,
        viewId: Annotated[
            Optional[str], Field(description="View ID (first view used if omitted)")
        ] = None,
        options: Annotated[
            Optional[List[str]],
            Field(description="Choice labels for singleOption/multipleOptions"),
        ] = None,
    ) -> CallToolResult:
        return await create_field(
            stackId,
            tableId,
            name,
            columnType,
            config,
            request_context_from(ctx),
            view_id=viewId,
            options=options,
        )

    logger.debug("Registered Stackby MCP tools")
