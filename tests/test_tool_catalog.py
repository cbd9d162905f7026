"""
Tests for tool discovery and catalog lookup.
"""

import httpx
import pytest
from conftest import (
    TOOLS,
    FakeToolServer,
    rpc_result,
)

from dbpilot.config import Settings
from dbpilot.errors import DiscoveryError
from dbpilot.rpc.client import JsonRpcClient
from dbpilot.tools import (
    ToolCatalog,
    ToolDefinition,
    ToolParameter,
)


def test_discover_builds_catalog(client: JsonRpcClient, server: FakeToolServer) -> None:
    """One getTools call yields every tool in discovery order."""

    catalog = ToolCatalog.discover(client)

    assert catalog.names() == ["getDatabaseSchema", "getTableSchema", "executeSQL"]
    assert len(server.requests) == 1
    request = server.requests[0]
    assert request == {
        "jsonrpc": "2.0",
        "method": "getTools",
        "params": {},
        "id": "tools-discovery-1",
    }
    table_schema = catalog.lookup("getTableSchema")
    assert table_schema is not None
    assert table_schema.parameters == {
        "tableName": ToolParameter(type="string", description="Schema-qualified table name")
    }
    assert catalog.lookup("getDatabaseSchema").parameters == {}


def test_lookup_is_case_insensitive(catalog: ToolCatalog) -> None:
    """Lookup ignores case but requires an exact name."""

    assert catalog.lookup("EXECUTESQL").name == "executeSQL"
    assert catalog.lookup("executesql") is catalog.lookup("executeSQL")
    assert catalog.lookup("execute") is None
    assert "gettableschema" in catalog
    assert "dropTable" not in catalog


def test_tool_without_parameters_key() -> None:
    """A tool entry with no parameters key has an empty parameter mapping."""

    catalog = ToolCatalog.from_response({"tools": [{"name": "ping", "description": "p"}]})

    assert catalog.lookup("ping").parameters == {}


def test_flat_parameter_map() -> None:
    """Parameters given without a properties wrapper are read directly."""

    raw = {"name": "t", "description": "", "parameters": {"limit": {"type": "integer"}}}
    catalog = ToolCatalog.from_response({"tools": [raw]})

    assert catalog.lookup("t").parameters == {"limit": ToolParameter(type="integer", description="")}


def test_loosely_typed_parameter_fields() -> None:
    """Type lists and non-string descriptions are read as text."""

    raw = {
        "name": "t",
        "description": 5,
        "parameters": {
            "type": "object",
            "properties": {
                "x": {"type": ["string", "null"], "description": "x"},
                "n": {"type": "integer", "description": 7},
            },
        },
    }
    tool = ToolCatalog.from_response({"tools": [raw]}).lookup("t")

    assert tool.description == "5"
    assert tool.parameters == {
        "x": ToolParameter(type="string|null", description="x"),
        "n": ToolParameter(type="integer", description="7"),
    }


def test_discover_tolerates_type_lists(settings: Settings, server: FakeToolServer) -> None:
    """A JSON Schema type list in a discovered tool does not abort discovery."""

    tools = [
        {
            "name": "findRows",
            "description": "d",
            "parameters": {"properties": {"filter": {"type": ["string", "null"]}}},
        }
    ]
    server.on("getTools", lambda body: rpc_result(body, {"tools": tools}))
    with JsonRpcClient(settings, http_client=httpx.Client(transport=server.transport())) as rpc:
        catalog = ToolCatalog.discover(rpc)

    assert catalog.lookup("findRows").parameters["filter"].type == "string|null"


@pytest.mark.parametrize(
    "result",
    [
        {},
        {"error": "Failed to load tools definition"},
        {"tools": "getDatabaseSchema"},
        ["getDatabaseSchema"],
        None,
    ],
)
def test_missing_tools_array(result: object) -> None:
    """A result without a tools array is a discovery error."""

    with pytest.raises(DiscoveryError):
        ToolCatalog.from_response(result)


def test_duplicate_names_rejected() -> None:
    """Tool names must be unique regardless of case."""

    tools = [{"name": "ping"}, {"name": "PING"}]
    with pytest.raises(DiscoveryError, match="Duplicate"):
        ToolCatalog.from_response({"tools": tools})


def test_discover_http_failure(settings: Settings, server: FakeToolServer) -> None:
    """A non-2xx discovery response is reported, not retried."""

    server.on("getTools", lambda body: httpx.Response(500, text="boom"))
    with JsonRpcClient(settings, http_client=httpx.Client(transport=server.transport())) as rpc:
        with pytest.raises(DiscoveryError, match="HTTP 500"):
            ToolCatalog.discover(rpc)

    assert len(server.calls("getTools")) == 1


def test_discover_invalid_json(settings: Settings, server: FakeToolServer) -> None:
    """A body that is not JSON is a discovery error."""

    server.on("getTools", lambda body: httpx.Response(200, text="<html>"))
    with JsonRpcClient(settings, http_client=httpx.Client(transport=server.transport())) as rpc:
        with pytest.raises(DiscoveryError, match="Invalid JSON"):
            ToolCatalog.discover(rpc)


def test_discover_timeout(settings: Settings) -> None:
    """A timed-out discovery call is a discovery error."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with JsonRpcClient(settings, http_client=httpx.Client(transport=httpx.MockTransport(handler))) as rpc:
        with pytest.raises(DiscoveryError, match="Timeout"):
            ToolCatalog.discover(rpc)


def test_discover_without_tools(settings: Settings, server: FakeToolServer) -> None:
    """A result lacking the tools member is a discovery error."""

    server.on("getTools", lambda body: rpc_result(body, {"error": "Failed to load tools definition"}))
    with JsonRpcClient(settings, http_client=httpx.Client(transport=server.transport())) as rpc:
        with pytest.raises(DiscoveryError, match="no tools"):
            ToolCatalog.discover(rpc)


def test_describe_lists_parameters(catalog: ToolCatalog) -> None:
    """The system-message rendering marks parameters as required."""

    text = catalog.describe()

    assert "- getDatabaseSchema: List all tables in the database\n  Parameters: none" in text
    assert "  REQUIRED Parameters:\n    - tableName (string): Schema-qualified table name" in text


def test_list_returns_copy(catalog: ToolCatalog) -> None:
    """list() hands out the tools without exposing internal state."""

    tools = catalog.list()
    tools.clear()

    assert len(catalog) == len(TOOLS)
    assert all(isinstance(tool, ToolDefinition) for tool in catalog)
