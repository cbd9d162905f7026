"""
Turns raw model text into an :data:`~dbpilot.core.schema.AgentDecision`.

The model is asked to reply with exactly one JSON object such as
    {"action": "call_tool", "tool_name": "<name>", "parameters": {...}, "reason": "..."}
but in practice it wraps replies in markdown fences, answers in plain prose, or invents its own
shape.  :func:`parse_decision` never raises: anything it cannot interpret becomes an
``AnswerUser`` (plain prose) or an ``AskClarification`` explaining the expected format.
"""

import json
import logging
import math
import re
from typing import (
    Any,
    Dict,
    Mapping,
)

from dbpilot.common import truncate
from dbpilot.core.schema import (
    AgentDecision,
    AnswerUser,
    AskClarification,
    CallTool,
    Scalar,
)

logger = logging.getLogger(__name__)

ACTIONS = ("call_tool", "answer_user", "ask_clarification")

_FENCE = "```"
# Optional language tag right after the opening fence: "```json\n" or "```json {"
_LANG_TAG = re.compile(r"[ \t]*[A-Za-z][\w+.-]*[ \t]*(?:\r?\n|(?=[{\[]))")

_INT32_SPAN = 2**32
_INT32_MIN = -(2**31)


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------
def strip_code_fences(text: str) -> str:
    """
    Return the text between the first and last triple-backtick fence, trimmed.

    A reply cut off at the token limit may open a fence without closing it; a lone fence at the
    very start is then dropped together with its language tag.
    """
    cleaned = text.strip()
    first = cleaned.find(_FENCE)
    last = cleaned.rfind(_FENCE)
    if first == -1:
        return cleaned
    if last == first:
        if first != 0:
            return cleaned
        last = len(cleaned)

    inner = cleaned[first + len(_FENCE) : last]
    tag = _LANG_TAG.match(inner)
    if tag:
        inner = inner[tag.end() :]
    return inner.strip()


def _to_int32(number: float) -> int:
    """Truncate toward zero and wrap into the signed 32-bit range."""
    return (int(number) - _INT32_MIN) % _INT32_SPAN + _INT32_MIN


def _to_scalar(value: Any) -> Scalar:
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return _to_int32(value)
    if isinstance(value, float):
        return _to_int32(value) if math.isfinite(value) else str(value)
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, ensure_ascii=False)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _misplaced_tool_question(data: Mapping[str, Any]) -> str:
    action = data.get("action")
    if isinstance(action, str) and action:
        guess = action
    else:
        others = [k for k in data if k not in ("parameters", "reason", "action")]
        guess = others[0] if others else "<tool name>"
    return (
        f"Invalid response format: it looks like you tried to call the tool '{guess}' without "
        "using the call_tool action. To call a tool, respond with "
        f'{{"action": "call_tool", "tool_name": "{guess}", "parameters": {{...}}, '
        '"reason": "why you are calling this tool"}.'
    )


def _parse_call_tool(data: Mapping[str, Any]) -> AgentDecision:
    tool_name = data.get("tool_name")
    if not isinstance(tool_name, str) or not tool_name.strip():
        return AskClarification(
            question="Missing 'tool_name' field in call_tool response. "
            "Please specify which tool to call using the exact name from the tool list."
        )

    raw_params = data.get("parameters")
    if raw_params is None:
        raw_params = {}
    if not isinstance(raw_params, dict):
        return AskClarification(
            question=f"The 'parameters' field for tool '{tool_name}' must be a JSON object "
            'mapping parameter names to values, e.g. {"tableName": "Users"}.'
        )

    parameters: Dict[str, Scalar] = {
        str(key): _to_scalar(value) for key, value in raw_params.items()
    }
    return CallTool(
        tool_name=tool_name.strip(),
        parameters=parameters,
        reason=_to_text(data.get("reason")),
    )


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------
def parse_decision(raw_text: str) -> AgentDecision:
    """
    Interpret one model reply.

    Returns
    -------
    AgentDecision
        Exactly one of ``CallTool``, ``AnswerUser`` or ``AskClarification``.  Text that is not a
        JSON object, or an object without ``action``, is returned verbatim as an ``AnswerUser``.
    """
    raw_text = raw_text or ""
    cleaned = strip_code_fences(raw_text)

    try:
        data = json.loads(cleaned)
    except (ValueError, RecursionError):
        logger.warning("Model reply is not JSON, treating it as the answer")
        return AnswerUser(response=raw_text)

    if not isinstance(data, dict):
        logger.warning("Model reply is JSON but not an object, treating it as the answer")
        return AnswerUser(response=raw_text)

    action = data.get("action")
    if action not in ACTIONS:
        if "parameters" in data and "reason" in data:
            logger.warning("Model put a tool call in the wrong shape: %s", truncate(cleaned))
            return AskClarification(question=_misplaced_tool_question(data))
        if "action" not in data:
            logger.warning("Model reply has no 'action' field, treating it as the answer")
            return AnswerUser(response=raw_text)
        logger.warning("Model reply has invalid action %r", action)
        return AskClarification(
            question=f"Invalid action '{action}'. The action must be one of: "
            + ", ".join(ACTIONS)
            + "."
        )

    if action == "call_tool":
        return _parse_call_tool(data)
    if action == "answer_user":
        return AnswerUser(response=_to_text(data.get("response")))
    return AskClarification(question=_to_text(data.get("question")))


def serialize_decision(decision: AgentDecision) -> str:
    """Render *decision* in the JSON shape the model is asked to produce."""
    return decision.model_dump_json()
