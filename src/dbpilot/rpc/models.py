"""
Pydantic models for the JSON-RPC 2.0 wire format spoken by the remote tool server.
"""

import uuid
from typing import (
    Any,
    Dict,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    Field,
)

JSONRPC_VERSION = "2.0"

# Request ids used for the one-off calls made at startup
HEALTH_CHECK_ID = "health-check-1"
TOOLS_DISCOVERY_ID = "tools-discovery-1"

# Error codes returned by the tool server
PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000


def new_request_id() -> str:
    """Return a fresh opaque id for a tool execution request."""
    return f"exec-{uuid.uuid4().hex[:8]}"


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class JsonRpcRequest(BaseModel):
    """A single JSON-RPC call."""

    jsonrpc: str = JSONRPC_VERSION
    method: str = Field(..., description="Tool name, or one of 'getTools' / 'health'")
    params: Dict[str, Any] = Field(default_factory=dict)
    id: str = Field(default_factory=new_request_id)


class JsonRpcError(BaseModel):
    """The ``error`` member of a failed response."""

    code: int = SERVER_ERROR
    message: str = "Unknown error"
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC response; exactly one of *result* / *error* is expected."""

    jsonrpc: str = JSONRPC_VERSION
    result: Any = None
    error: Optional[JsonRpcError] = None
    id: Optional[Union[str, int]] = None

    @property
    def has_result(self) -> bool:
        """True when the server sent a ``result`` member, even a null one."""
        return "result" in self.model_fields_set
