"""
Schema definitions for backend <-> agent <-> tool messages.

These data models serve as the contract between the text-generation backend, the orchestration
loop, and the remote tool server.  We keep them separate from runtime logic so they can be imported
anywhere without side-effects.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    Literal,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
)

# Tool parameters are restricted to these three JSON scalar kinds.
Scalar = Union[StrictBool, StrictInt, StrictStr]


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------
class CallTool(BaseModel):
    """The model wants the agent to invoke a remote tool."""

    model_config = ConfigDict(frozen=True)

    action: Literal["call_tool"] = "call_tool"
    tool_name: str = Field(..., description="Tool name as listed in the catalog")
    parameters: Dict[str, Scalar] = Field(default_factory=dict)
    reason: str = ""


class AnswerUser(BaseModel):
    """The model has a final answer for the user."""

    model_config = ConfigDict(frozen=True)

    action: Literal["answer_user"] = "answer_user"
    response: str = ""


class AskClarification(BaseModel):
    """The model (or the parser, on its behalf) needs more information."""

    model_config = ConfigDict(frozen=True)

    action: Literal["ask_clarification"] = "ask_clarification"
    question: str = ""


AgentDecision = Annotated[
    Union[CallTool, AnswerUser, AskClarification], Field(discriminator="action")
]


# ---------------------------------------------------------------------------
# Loop state
# ---------------------------------------------------------------------------
class LoopState(str, Enum):
    """States of the agent loop; the last five are terminal."""

    START = "start"
    DECIDING = "deciding"
    TOOL_EXECUTING = "tool_executing"
    ANSWERED = "answered"
    CLARIFICATION_ASKED = "clarification_asked"
    ITERATION_LIMIT_EXCEEDED = "iteration_limit_exceeded"
    INTERNAL_ERROR = "internal_error"
    CANCELLED = "cancelled"


class ConversationState(BaseModel):
    """
    Per-run conversation state.

    Immutable: each iteration produces a new value through :meth:`advance`.
    """

    model_config = ConfigDict(frozen=True)

    original_question: str
    current_prompt: str
    iteration: int = Field(1, ge=1)
    max_iterations: int = Field(10, ge=1)

    def advance(self, next_prompt: str) -> "ConversationState":
        """Return the state for the following iteration."""
        return self.model_copy(
            update={"iteration": self.iteration + 1, "current_prompt": next_prompt}
        )

    @property
    def exhausted(self) -> bool:
        """True when the iteration counter has passed the ceiling."""
        return self.iteration > self.max_iterations


class ToolInvocationResult(BaseModel):
    """Outcome of a single tool invocation: a decoded JSON value or an error message."""

    model_config = ConfigDict(frozen=True)

    value: Any = None
    error: str | None = None

    @classmethod
    def success(cls, value: Any) -> "ToolInvocationResult":
        return cls(value=value)

    @classmethod
    def failure(cls, message: str) -> "ToolInvocationResult":
        return cls(error=message)

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_text(self) -> str:
        """Render the outcome the way it is fed back to the model."""
        if self.error is not None:
            return f"ERROR: {self.error}"
        if isinstance(self.value, str):
            return self.value
        return json.dumps(self.value, ensure_ascii=False)


class AgentResult(BaseModel):
    """What a finished agent run hands back to its caller."""

    state: LoopState
    reply: str
    iterations: int = 0
