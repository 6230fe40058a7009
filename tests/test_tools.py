# Stackby MCP Server
# File: tests/test_tools.py
# Version: v1

"""Tests for the core tool tasks in tools.tasks.

These tests patch `_make_client` so that we never talk to a real Stackby
API. Behaviour is verified against simple fake clients or an
httpx.MockTransport-backed client.
"""

from __future__ import annotations

from typing import Any, Dict, List

import httpx
import pytest

from stackby_mcp.client import StackbyClient
from stackby_mcp.config import StackbyConfig
from stackby_mcp.context import RequestContext
from stackby_mcp.errors import StackbyAPIError
from stackby_mcp.models import (
    DeletedRecord,
    SearchResult,
    Stack,
    Table,
    TableDescription,
    TableField,
    TableRecord,
    TableView,
    Workspace,
)
from stackby_mcp.tools import tasks

CONFIG = StackbyConfig(api_key="env-key", api_url="https://stackby.test")


def _text(result) -> str:
    assert len(result.content) == 1
    return result.content[0].text


def _no_client(credentials, config):
    raise AssertionError("no client should be created for this call")


class _FakeClient:
    """Fake StackbyClient recording every call."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []

    async def get_workspaces(self) -> List[Workspace]:
        self.calls.append({"op": "get_workspaces"})
        return [Workspace(id="w1", name="Marketing")]

    async def get_all_stacks(self) -> List[Stack]:
        return [
            Stack(stack_id="s1", workspace_id="w1", stack_name="CRM", workspace_name="Marketing"),
            Stack(stack_id="s2", workspace_id="w9", stack_name="Loose"),
        ]

    async def get_tables(self, stack_id: str) -> List[Table]:
        self.calls.append({"op": "get_tables", "stack_id": stack_id})
        return []

    async def describe_table(self, stack_id: str, table_id: str) -> TableDescription:
        return TableDescription(
            id=table_id,
            name="Tasks",
            fields=[TableField(id="c1", name="Name", type="shortText")],
            views=[],
        )

    async def get_row_list(self, stack_id, table_id, options=None) -> List[TableRecord]:
        self.calls.append({"op": "get_row_list", "options": options})
        return [TableRecord(id="r1", field={"Name": "Alpha"})]

    async def search_records(self, stack_id, table_id, term, column_id=None, max_records=None):
        self.calls.append({"op": "search_records", "column_id": column_id, "term": term})
        return SearchResult(row_ids=["r1", "r2"], row_names=["Alpha"])

    async def get_record(self, stack_id, table_id, record_id):
        return None

    async def update_rows(self, stack_id, table_id, records):
        self.calls.append({"op": "update_rows", "records": list(records)})
        return [TableRecord(id=r["id"], field=r["fields"]) for r in records]

    async def delete_rows(self, stack_id, table_id, record_ids):
        self.calls.append({"op": "delete_rows", "record_ids": list(record_ids)})
        return [DeletedRecord(id=rid, deleted=True) for rid in record_ids]

    async def create_table(self, stack_id, name):
        return {"tableId": "tbl_new"}

    async def get_table_views(self, stack_id, table_id) -> List[TableView]:
        self.calls.append({"op": "get_table_views"})
        return [TableView(id="view_first", name="Default", table_id=table_id)]

    async def create_column(self, stack_id, table_id, name, column_type, view_id, options=None):
        self.calls.append(
            {"op": "create_column", "view_id": view_id, "options": options, "name": name}
        )
        return {"columnId": "col_new"}


@pytest.fixture
def fake(monkeypatch) -> _FakeClient:
    client = _FakeClient()
    monkeypatch.setattr(tasks, "_make_client", lambda credentials, config: client)
    return client


# ---------------------------------------------------------------------------
# Preconditions: no client, no network
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "stack_id,table_id",
    [("", "tbl"), ("stk", ""), ("   ", "tbl"), ("stk", "\t "), (None, "tbl")],
)
async def test_blank_ids_fail_before_any_call(monkeypatch, stack_id, table_id):
    monkeypatch.setattr(tasks, "_make_client", _no_client)

    results = [
        await tasks.describe_table(stack_id, table_id, CONFIG),
        await tasks.list_records(stack_id, table_id, CONFIG),
        await tasks.search_records(stack_id, table_id, "term", CONFIG),
        await tasks.get_record(stack_id, table_id, "rec", CONFIG),
        await tasks.create_record(stack_id, table_id, {"Name": "x"}, CONFIG),
        await tasks.update_records(stack_id, table_id, [{"id": "r1", "fields": {}}], CONFIG),
        await tasks.delete_records(stack_id, table_id, ["r1"], CONFIG),
        await tasks.create_field(stack_id, table_id, "Col", "number", CONFIG),
    ]

    for result in results:
        assert result.isError is True
        assert "required" in _text(result)


@pytest.mark.asyncio
async def test_missing_credentials_is_error_with_guidance(monkeypatch):
    monkeypatch.setattr(tasks, "_make_client", _no_client)
    no_key = StackbyConfig(api_key=None)

    for result in [
        await tasks.list_workspaces(no_key),
        await tasks.list_stacks(no_key),
        await tasks.list_tables("stk", no_key),
    ]:
        assert result.isError is True
        assert "STACKBY_API_KEY is not set" in _text(result)


@pytest.mark.asyncio
@pytest.mark.parametrize("size", [0, 11])
async def test_batch_sizes_out_of_range_rejected(monkeypatch, size):
    monkeypatch.setattr(tasks, "_make_client", _no_client)

    updates = [{"id": f"r{i}", "fields": {"A": i}} for i in range(size)]
    ids = [f"r{i}" for i in range(size)]

    upd = await tasks.update_records("stk", "tbl", updates, CONFIG)
    dele = await tasks.delete_records("stk", "tbl", ids, CONFIG)

    assert upd.isError is True and f"(got {size})" in _text(upd)
    assert dele.isError is True and f"(got {size})" in _text(dele)


@pytest.mark.asyncio
@pytest.mark.parametrize("size", [1, 10])
async def test_batch_sizes_in_range_dispatched(fake, size):
    updates = [{"id": f"r{i}", "fields": {"A": i}} for i in range(size)]
    ids = [f"r{i}" for i in range(size)]

    upd = await tasks.update_records("stk", "tbl", updates, CONFIG)
    dele = await tasks.delete_records("stk", "tbl", ids, CONFIG)

    assert upd.isError is False
    assert _text(upd).startswith(f"Updated {size} record(s):")
    assert dele.isError is False
    assert _text(dele).startswith(f"Deleted {size} record(s):")
    assert "deleted=true" in _text(dele)


@pytest.mark.asyncio
async def test_update_records_accepts_pydantic_models(fake):
    record = tasks.RecordUpdate(id=" r1 ", fields={"Status": "Done"})
    result = await tasks.update_records("stk", "tbl", [record], CONFIG)

    assert result.isError is False
    assert fake.calls[-1]["records"] == [{"id": "r1", "fields": {"Status": "Done"}}]


@pytest.mark.asyncio
async def test_create_record_rejects_non_object_fields(monkeypatch):
    monkeypatch.setattr(tasks, "_make_client", _no_client)
    result = await tasks.create_record("stk", "tbl", ["not", "a", "map"], CONFIG)
    assert result.isError is True
    assert "fields must be an object" in _text(result)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_workspaces_lines(fake):
    result = await tasks.list_workspaces(CONFIG)
    assert result.isError is False
    assert _text(result) == "Workspaces (1):\n- Marketing (id: w1)"


@pytest.mark.asyncio
async def test_list_stacks_uses_workspace_name_or_id(fake):
    text = _text(await tasks.list_stacks(CONFIG))
    assert "- CRM (id: s1, workspace: Marketing)" in text
    assert "- Loose (id: s2, workspace: w9)" in text


@pytest.mark.asyncio
async def test_list_tables_trims_and_reports_empty(fake):
    result = await tasks.list_tables("  stk1  ", CONFIG)
    assert fake.calls[-1] == {"op": "get_tables", "stack_id": "stk1"}
    assert _text(result) == "Tables in stack stk1 (0):\nNo tables found in this stack."


@pytest.mark.asyncio
async def test_describe_table_text(fake):
    text = _text(await tasks.describe_table("stk", "tbl", CONFIG))
    assert text.splitlines()[0] == "Table: Tasks (id: tbl)"
    assert "  - Name (id: c1, type: shortText)" in text
    assert "(no views)" in text


@pytest.mark.asyncio
async def test_list_records_passes_options(fake):
    text = _text(await tasks.list_records("stk", "tbl", CONFIG, max_records=5, offset=10, view_id=" v1 "))
    options = fake.calls[-1]["options"]
    assert (options.max_records, options.offset, options.view) == (5, 10, "v1")
    assert '- id: r1 | {"Name": "Alpha"}' in text


@pytest.mark.asyncio
async def test_search_records_uses_first_field_id(fake):
    text = _text(
        await tasks.search_records("stk", "tbl", " alp ", CONFIG, field_ids=["c2", "c3"])
    )
    assert fake.calls[-1] == {"op": "search_records", "column_id": "c2", "term": "alp"}
    assert text.startswith('Search "alp" in table tbl (2 matches):')
    assert "- id: r2 | " in text


@pytest.mark.asyncio
async def test_get_record_not_found_is_not_error(fake):
    result = await tasks.get_record("stk", "tbl", "rec9", CONFIG)
    assert result.isError is False
    assert _text(result) == "No record found with id rec9 in table tbl."


@pytest.mark.asyncio
async def test_create_table_text(fake):
    result = await tasks.create_table("stk", " Projects ", CONFIG)
    assert _text(result) == "Created table: Projects\nTable ID: tbl_new"


@pytest.mark.asyncio
async def test_create_field_resolves_first_view(fake):
    result = await tasks.create_field("stk", "tbl", "Status", "singleOption", CONFIG, options=["A", "B"])

    ops = [c["op"] for c in fake.calls]
    assert ops == ["get_table_views", "create_column"]
    assert fake.calls[-1]["view_id"] == "view_first"
    assert fake.calls[-1]["options"] == ["A", "B"]
    assert _text(result) == "Created column: Status\nColumn ID: col_new\nType: singleOption"


@pytest.mark.asyncio
async def test_create_field_with_explicit_view_skips_lookup(fake):
    await tasks.create_field("stk", "tbl", "Count", "number", CONFIG, view_id="v7")
    assert [c["op"] for c in fake.calls] == ["create_column"]
    assert fake.calls[-1]["view_id"] == "v7"


@pytest.mark.asyncio
async def test_remote_error_gets_hint(monkeypatch):
    class _Failing:
        async def get_tables(self, stack_id):
            raise StackbyAPIError(403, "No access to stack")

    monkeypatch.setattr(tasks, "_make_client", lambda credentials, config: _Failing())

    result = await tasks.list_tables("stk", CONFIG)
    assert result.isError is True
    assert _text(result) == (
        "Failed to list tables: Stackby API 403: No access to stack. "
        "Check stackId and API access."
    )


@pytest.mark.asyncio
async def test_listing_error_names_resolved_base_url(monkeypatch):
    class _Failing:
        async def get_workspaces(self):
            raise StackbyAPIError(None, "connection refused")

    monkeypatch.setattr(tasks, "_make_client", lambda credentials, config: _Failing())

    result = await tasks.list_workspaces(
        CONFIG, RequestContext(api_key="caller", api_url="  https://eu.stackby.test/ ")
    )

    assert result.isError is True
    assert _text(result).endswith("API base URL in use: https://eu.stackby.test.")


@pytest.mark.asyncio
async def test_request_context_credentials_reach_client(monkeypatch):
    seen = {}

    def factory(credentials, config):
        seen["credentials"] = credentials
        return _FakeClient()

    monkeypatch.setattr(tasks, "_make_client", factory)

    await tasks.list_workspaces(CONFIG, RequestContext(api_key="caller", api_url="https://c.test"))

    assert seen["credentials"].api_key == "caller"
    assert seen["credentials"].base_url == "https://c.test"


# ---------------------------------------------------------------------------
# create_record end to end over a stubbed remote
# ---------------------------------------------------------------------------


def _stub_remote(monkeypatch, handler) -> None:
    transport = httpx.MockTransport(handler)
    monkeypatch.setattr(
        tasks,
        "_make_client",
        lambda credentials, config: StackbyClient(
            credentials=credentials, config=config, transport=transport
        ),
    )


@pytest.mark.asyncio
async def test_create_record_success_echo(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/mcp/stacks/stk/tables/tbl/rows"
        return httpx.Response(200, json={"data": [{"id": "rec1", "field": {"Name": "Task 1"}}]})

    _stub_remote(monkeypatch, handler)

    result = await tasks.create_record("stk", "tbl", {"Name": "Task 1"}, CONFIG)

    assert result.isError is False
    text = _text(result)
    assert text.startswith("Created record: rec1")
    assert '"Name": "Task 1"' in text


@pytest.mark.asyncio
async def test_create_record_remote_404(monkeypatch):
    _stub_remote(
        monkeypatch,
        lambda request: httpx.Response(404, json={"error": "Table tbl does not exist"}),
    )

    result = await tasks.create_record("stk", "tbl", {"Name": "Task 1"}, CONFIG)

    assert result.isError is True
    text = _text(result)
    assert "404" in text
    assert "Table tbl does not exist" in text
    assert "describe_table" in text


@pytest.mark.asyncio
async def test_create_record_nothing_created_is_error(monkeypatch):
    _stub_remote(monkeypatch, lambda request: httpx.Response(200, json={"data": []}))

    result = await tasks.create_record("stk", "tbl", {"Name": "Task 1"}, CONFIG)

    assert result.isError is True
    assert "No record was created" in _text(result)


@pytest.mark.asyncio
async def test_get_record_null_envelope_is_not_found(monkeypatch):
    _stub_remote(monkeypatch, lambda request: httpx.Response(200, json={"data": None}))

    result = await tasks.get_record("stk", "tbl", "r1", CONFIG)

    assert result.isError is False
    assert _text(result) == "No record found with id r1 in table tbl."


@pytest.mark.asyncio
async def test_search_in_table_without_columns_is_empty(monkeypatch):
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"data": []})

    _stub_remote(monkeypatch, handler)

    result = await tasks.search_records("stk", "tbl", "anything", CONFIG)

    assert result.isError is False
    assert "No matching records." in _text(result)
    assert "(0 matches)" in _text(result)
    assert paths == ["/api/v1/mcp/stacks/stk/tables/tbl/columns"]


def test_register_tools_rejects_non_server():
    with pytest.raises(ValueError):
        tasks.register_tools(object(), CONFIG)
