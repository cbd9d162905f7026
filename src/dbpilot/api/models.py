"""
Pydantic models for dbpilot API requests and responses.
This module defines the request and response schemas used by the dbpilot API.
"""

from typing import List

from pydantic import (
    BaseModel,
    Field,
)

from dbpilot.core.schema import LoopState
from dbpilot.tools import ToolDefinition


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class AskRequest(BaseModel):
    """Incoming user question."""

    question: str = Field(..., min_length=1, description="Natural-language question for dbpilot")


class AskResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    state: LoopState
    iterations: int


class HealthResponse(BaseModel):
    """Liveness of the API and of the remote tool server behind it."""

    status: str = "ok"
    tool_server: str


class ToolsResponse(BaseModel):
    """The discovered tool catalog."""

    tools: List[ToolDefinition]
