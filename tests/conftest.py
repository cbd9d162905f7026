"""
Shared fixtures: an in-memory JSON-RPC tool server and a scripted text-generation backend.

Run with:
$ pytest -q
"""

import json
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
)

import httpx
import pytest

from dbpilot.agent.backend_interface import (
    BaseBackend,
    Message,
)
from dbpilot.config import Settings
from dbpilot.rpc.client import JsonRpcClient
from dbpilot.tools import ToolCatalog

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "getDatabaseSchema",
        "description": "List all tables in the database",
        "parameters": {"type": "object", "properties": {}, "required": []},
    },
    {
        "name": "getTableSchema",
        "description": "Describe the columns of one table",
        "parameters": {
            "type": "object",
            "properties": {
                "tableName": {"type": "string", "description": "Schema-qualified table name"}
            },
            "required": ["tableName"],
        },
    },
    {
        "name": "executeSQL",
        "description": "Run a read-only SQL query",
        "parameters": {
            "type": "object",
            "properties": {"query": {"type": "string", "description": "The SELECT statement"}},
            "required": ["query"],
        },
    },
]


def rpc_result(request: Dict[str, Any], result: Any) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "result": result, "id": request["id"]})


def rpc_error(request: Dict[str, Any], code: int, message: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": None},
    )


Handler = Callable[[Dict[str, Any]], httpx.Response]


class FakeToolServer:
    """Answers JSON-RPC requests in-process through :class:`httpx.MockTransport`."""

    def __init__(self, tools: Sequence[Dict[str, Any]] = TOOLS) -> None:
        self.tools = list(tools)
        self.requests: List[Dict[str, Any]] = []
        self.handlers: Dict[str, Handler] = {}

    def on(self, method: str, handler: Handler) -> None:
        self.handlers[method] = handler

    def calls(self, method: str) -> List[Dict[str, Any]]:
        return [req for req in self.requests if req["method"] == method]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        method = body["method"]
        if method in self.handlers:
            return self.handlers[method](body)
        if method == "health":
            return rpc_result(body, {"status": "healthy", "timestamp": "2024-01-01T00:00:00Z"})
        if method == "getTools":
            return rpc_result(body, {"tools": self.tools})
        return rpc_error(body, -32601, f"Method '{method}' not found.")


class ScriptedBackend(BaseBackend):
    """Backend that replays canned replies (or raises canned exceptions)."""

    provider_name = "scripted"

    def __init__(
        self, settings: Settings, replies: Sequence[Any], repeat_last: bool = False
    ) -> None:
        super().__init__(settings)
        self.model_name = "scripted"
        self.replies = list(replies)
        self.repeat_last = repeat_last
        self.prompts: List[str] = []

    def _complete(self, messages: List[Message]) -> str:
        self.prompts.append(messages[-1]["content"])
        if not self.replies:
            raise AssertionError("ScriptedBackend ran out of replies")
        reply = self.replies[0] if self.repeat_last and len(self.replies) == 1 else self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        SERVER_HOST="tools.test",
        SERVER_PORT=8080,
        REQUEST_TIMEOUT_SECONDS=5,
        MAX_ITERATIONS=10,
        LLM_PROVIDER="openai",
        OPENAI_API_KEY=None,
    )


@pytest.fixture
def server() -> FakeToolServer:
    return FakeToolServer()


@pytest.fixture
def client(settings: Settings, server: FakeToolServer) -> JsonRpcClient:
    rpc = JsonRpcClient(settings, http_client=httpx.Client(transport=server.transport()))
    yield rpc
    rpc.close()


@pytest.fixture
def catalog() -> ToolCatalog:
    return ToolCatalog.from_response({"tools": TOOLS})
