# Stackby MCP Server
# File: client.py
# Version: v1
"""High-level client for the Stackby MCP REST API.

Every route lives under a single configurable prefix (``/api/v1/mcp`` by
default). Implements:

- get_workspaces() / get_stacks() / get_all_stacks()
- get_tables() / get_table_columns() / get_table_views() / describe_table()
- get_row_list() / get_record() / search_records()
- create_row() / update_rows() / delete_rows()
- create_table() / create_column()

The service sometimes wraps payloads as ``{"data": ...}`` and sometimes
returns them bare; callers always receive the unwrapped payload.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx
from httpx import RequestError

from .auth import Credentials, auth_headers
from .config import StackbyConfig
from .errors import StackbyAPIError, StackbyValidationError
from .models import (
    DeletedRecord,
    RowListOptions,
    SearchResult,
    Stack,
    Table,
    TableDescription,
    TableField,
    TableRecord,
    TableView,
    Workspace,
)

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 10
MAX_LIST_RECORDS = 100
MAX_SEARCH_RECORDS = 99999


def normalize_response(body: Any) -> Any:
    """Return the payload whether or not it is wrapped in ``{"data": ...}``."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def _as_list(data: Any) -> List[Any]:
    return data if isinstance(data, list) else []


def _check_batch(items: Sequence[Any], operation: str) -> None:
    if len(items) == 0:
        raise StackbyValidationError(f"{operation} requires at least one record.")
    if len(items) > MAX_BATCH_SIZE:
        raise StackbyValidationError(
            f"{operation} supports at most {MAX_BATCH_SIZE} records per request."
        )


def _error_detail(body: Any, response: httpx.Response) -> str:
    if isinstance(body, dict):
        detail = body.get("error") or body.get("message")
        if detail:
            return detail if isinstance(detail, str) else json.dumps(detail)
    return response.reason_phrase or f"HTTP {response.status_code}"


def _parse_field(item: Dict[str, Any]) -> TableField:
    return TableField(
        id=str(item.get("id", "")),
        name=str(item.get("name", "")),
        type=str(item.get("type", "")),
        key=item.get("key"),
        label=item.get("label"),
    )


def _parse_view(item: Dict[str, Any], table_id: str) -> TableView:
    return TableView(
        id=str(item.get("id", "")),
        name=str(item.get("name", "")),
        table_id=str(item.get("tableId") or table_id),
    )


def _parse_record(item: Dict[str, Any]) -> TableRecord:
    raw_field = item.get("field")
    return TableRecord(
        id=str(item.get("id", "")),
        field=raw_field if isinstance(raw_field, dict) else {},
    )


@dataclass
class StackbyClient:
    """Wrapper around the Stackby MCP API for one set of credentials.

    A client is built per tool call from explicitly resolved credentials,
    so it never consults ambient state to decide who the caller is.
    ``transport`` is passed through to httpx (tests inject a MockTransport).
    """

    credentials: Credentials
    config: StackbyConfig
    transport: Optional[httpx.AsyncBaseTransport] = None

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.credentials.base_url}{self.config.api_prefix}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        params: Any = None,
        json_body: Any = None,
    ) -> Any:
        url = self._url(path)
        headers = auth_headers(self.credentials.api_key)

        async with httpx.AsyncClient(
            timeout=float(self.config.timeout_seconds),
            verify=self.config.verify_tls,
            transport=self.transport,
        ) as http_client:
            try:
                response = await http_client.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json_body,
                )
            except RequestError as exc:
                logger.warning("Stackby API %s %s failed: %s", method, url, exc)
                raise StackbyAPIError(None, f"{exc} ({url})") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            detail = _error_detail(body, response)
            logger.warning(
                "Stackby API %s %s returned HTTP %s: %s",
                method,
                url,
                response.status_code,
                detail,
            )
            raise StackbyAPIError(response.status_code, detail)

        return normalize_response(body)

    # ------------------------------------------------------------------
    # Workspaces & stacks
    # ------------------------------------------------------------------

    async def get_workspaces(self) -> List[Workspace]:
        data = await self._request("GET", "/workspaces")

        workspaces: List[Workspace] = []
        for item in _as_list(data):
            if not isinstance(item, dict):
                continue
            workspaces.append(
                Workspace(id=str(item.get("id", "")), name=str(item.get("name", "")))
            )
        return workspaces

    async def get_stacks(
        self,
        workspace_id: str,
        workspace_name: Optional[str] = None,
    ) -> List[Stack]:
        """List stacks of one workspace (POST with the workspace id in the body)."""
        data = await self._request(
            "POST", "/stacks", json_body={"workspaceId": workspace_id}
        )

        stacks: List[Stack] = []
        for item in _as_list(data):
            if not isinstance(item, dict):
                continue
            stacks.append(
                Stack(
                    stack_id=str(item.get("stackId") or ""),
                    workspace_id=str(item.get("workspaceId") or workspace_id),
                    stack_name=str(item.get("stackName") or ""),
                    color=item.get("color"),
                    icon=item.get("icon"),
                    created_at=item.get("createdAt"),
                    workspace_name=workspace_name,
                )
            )
        return stacks

    async def get_all_stacks(self) -> List[Stack]:
        """List stacks across every workspace.

        A workspace whose listing fails (e.g. no access) is skipped so the
        aggregate listing still succeeds.
        """
        workspaces = await self.get_workspaces()

        stacks: List[Stack] = []
        for ws in workspaces:
            try:
                stacks.extend(await self.get_stacks(ws.id, ws.name))
            except StackbyAPIError as exc:
                logger.info("Skipping workspace %s (%s): %s", ws.name, ws.id, exc)
        return stacks

    # ------------------------------------------------------------------
    # Tables, columns, views
    # ------------------------------------------------------------------

    async def get_tables(self, stack_id: str) -> List[Table]:
        data = await self._request("GET", f"/stacks/{_segment(stack_id)}/tables")

        tables: List[Table] = []
        for item in _as_list(data):
            if not isinstance(item, dict):
                continue
            tables.append(Table(id=str(item.get("id", "")), name=str(item.get("name", ""))))
        return tables

    def _table_path(self, stack_id: str, table_id: str) -> str:
        return f"/stacks/{_segment(stack_id)}/tables/{_segment(table_id)}"

    async def get_table_columns(self, stack_id: str, table_id: str) -> List[TableField]:
        data = await self._request("GET", f"{self._table_path(stack_id, table_id)}/columns")
        return [_parse_field(item) for item in _as_list(data) if isinstance(item, dict)]

    async def get_table_views(self, stack_id: str, table_id: str) -> List[TableView]:
        data = await self._request("GET", f"{self._table_path(stack_id, table_id)}/views")
        return [
            _parse_view(item, table_id) for item in _as_list(data) if isinstance(item, dict)
        ]

    async def describe_table(self, stack_id: str, table_id: str) -> TableDescription:
        """Fetch id, name, fields and views of a table in one call."""
        data = await self._request("GET", self._table_path(stack_id, table_id))
        payload = data if isinstance(data, dict) else {}

        return TableDescription(
            id=str(payload.get("id") or table_id),
            name=str(payload.get("name") or table_id),
            fields=[
                _parse_field(item)
                for item in _as_list(payload.get("fields"))
                if isinstance(item, dict)
            ],
            views=[
                _parse_view(item, table_id)
                for item in _as_list(payload.get("views"))
                if isinstance(item, dict)
            ],
        )

    # ------------------------------------------------------------------
    # Rows: read
    # ------------------------------------------------------------------

    async def get_row_list(
        self,
        stack_id: str,
        table_id: str,
        options: Optional[RowListOptions] = None,
    ) -> List[TableRecord]:
        opts = options or RowListOptions()

        max_records = opts.max_records if opts.max_records is not None else MAX_LIST_RECORDS
        max_records = min(max(1, int(max_records)), MAX_LIST_RECORDS)
        offset = max(0, int(opts.offset or 0))

        params: Dict[str, Any] = {"maxrecord": max_records, "offset": offset}
        if opts.row_ids:
            params["rowIds"] = ",".join(opts.row_ids)
        optional = {
            "view": opts.view,
            "filter": opts.filter,
            "sort": opts.sort,
            "latest": opts.latest,
            "filterByFormula": opts.filter_by_formula,
            "conjuction": opts.conjuction,
        }
        for name, value in optional.items():
            if value:
                params[name] = value

        data = await self._request(
            "GET", f"{self._table_path(stack_id, table_id)}/rows", params=params
        )
        return [_parse_record(item) for item in _as_list(data) if isinstance(item, dict)]

    async def get_record(
        self,
        stack_id: str,
        table_id: str,
        record_id: str,
    ) -> Optional[TableRecord]:
        """Fetch one row, or None if the service returned nothing usable."""
        data = await self._request(
            "GET", f"{self._table_path(stack_id, table_id)}/rows/{_segment(record_id)}"
        )
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            return None
        return _parse_record(data)

    async def search_records(
        self,
        stack_id: str,
        table_id: str,
        search_term: str,
        column_id: Optional[str] = None,
        max_records: Optional[int] = None,
    ) -> SearchResult:
        """Search a column for text.

        Without ``column_id`` the table's first column is searched; a table
        without columns yields an empty result and no search request.
        """
        column = (column_id or "").strip()
        if not column:
            columns = await self.get_table_columns(stack_id, table_id)
            if not columns:
                return SearchResult()
            column = columns[0].id

        limit = max_records if max_records is not None else MAX_LIST_RECORDS
        limit = min(max(1, int(limit)), MAX_SEARCH_RECORDS)

        data = await self._request(
            "POST",
            f"{self._table_path(stack_id, table_id)}/search",
            json_body={"search": search_term, "columnId": column, "maxRecords": limit},
        )

        first = data[0] if isinstance(data, list) and data else data
        if not isinstance(first, dict) or not first.get("rowIds"):
            return SearchResult()

        return SearchResult(
            row_ids=[str(r) for r in _as_list(first.get("rowIds"))],
            row_names=[str(n) for n in _as_list(first.get("rowname"))],
            fields=[f for f in _as_list(first.get("fields")) if isinstance(f, dict)],
        )

    # ------------------------------------------------------------------
    # Rows: write
    # ------------------------------------------------------------------

    async def create_row(
        self,
        stack_id: str,
        table_id: str,
        fields: Dict[str, Any],
    ) -> List[TableRecord]:
        data = await self._request(
            "POST",
            f"{self._table_path(stack_id, table_id)}/rows",
            json_body={"records": [{"field": fields}]},
        )
        return [_parse_record(item) for item in _as_list(data) if isinstance(item, dict)]

    async def update_rows(
        self,
        stack_id: str,
        table_id: str,
        records: Sequence[Dict[str, Any]],
    ) -> List[TableRecord]:
        """Update up to ten rows. Each record is ``{"id": ..., "fields": {...}}``."""
        _check_batch(records, "update_records")

        body = {
            "records": [{"id": r["id"], "field": r.get("fields") or {}} for r in records]
        }
        data = await self._request(
            "POST", f"{self._table_path(stack_id, table_id)}/rows/update", json_body=body
        )
        return [_parse_record(item) for item in _as_list(data) if isinstance(item, dict)]

    async def delete_rows(
        self,
        stack_id: str,
        table_id: str,
        record_ids: Sequence[str],
    ) -> List[DeletedRecord]:
        """Soft-delete up to ten rows."""
        _check_batch(record_ids, "delete_records")

        data = await self._request(
            "DELETE",
            f"{self._table_path(stack_id, table_id)}/rows",
            params=[("rowIds", rid) for rid in record_ids],
        )
        raw = data.get("records") if isinstance(data, dict) else data
        return [
            DeletedRecord(id=str(item.get("id", "")), deleted=bool(item.get("deleted")))
            for item in _as_list(raw)
            if isinstance(item, dict)
        ]

    # ------------------------------------------------------------------
    # Schema: create only
    # ------------------------------------------------------------------

    async def create_table(self, stack_id: str, name: str) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            f"/stacks/{_segment(stack_id)}/tables",
            json_body={"name": name.strip()},
        )
        return data if isinstance(data, dict) else {}

    async def create_column(
        self,
        stack_id: str,
        table_id: str,
        name: str,
        column_type: str,
        view_id: str,
        options: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """Create a column. ``view_id`` must already be resolved by the caller."""
        body: Dict[str, Any] = {
            "stackId": stack_id,
            "tableId": table_id,
            "name": name.strip(),
            "columnType": column_type,
            "viewId": view_id or "",
        }
        if options:
            body["options"] = list(options)

        data = await self._request("POST", "/columns", json_body=body)
        return data if isinstance(data, dict) else {}
