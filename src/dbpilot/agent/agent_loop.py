"""Main orchestration loop for dbpilot."""

from __future__ import annotations

import logging
import threading
from typing import List

from dbpilot.agent.backend_interface import BaseBackend
from dbpilot.agent.tool_invoker import ToolInvoker
from dbpilot.common import truncate
from dbpilot.config import Settings
from dbpilot.core.schema import (
    AgentDecision,
    AgentResult,
    AnswerUser,
    AskClarification,
    CallTool,
    ConversationState,
    LoopState,
)
from dbpilot.tools import ToolCatalog
from dbpilot.tools.decision_parser import parse_decision

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10

FAILURE_REPLY = "Sorry, I couldn't process your request properly."
ITERATION_LIMIT_REPLY = "Sorry, I couldn't complete your request within the allowed iterations."
CANCELLED_REPLY = "The request was cancelled before it could be completed."

SYSTEM_PROMPT = """\
You are an intelligent database assistant that helps users by calling the appropriate tools based \
on their requests.

AVAILABLE TOOLS:
{tools}
IMPORTANT RULES:
1. NEVER guess table names, column names, or SQL queries
2. ONLY use the tools listed above - do not invent or assume any tools exist
3. ALWAYS ask for clarification if you need specific table names or column names
4. Use tools in the correct sequence to gather information before answering
5. Some queries can be answered without knowing the column names.

RESPONSE FORMAT:
Reply with exactly one JSON object and no extra text.

When you need to call a tool, respond with:
{{
    "action": "call_tool",
    "tool_name": "exact_tool_name_from_list",
    "parameters": {{"param_name": "param_value"}},
    "reason": "why you are calling this tool"
}}

When you have enough information to answer the user, respond with:
{{
    "action": "answer_user",
    "response": "your detailed answer based on the tool results"
}}

When you need clarification, respond with:
{{
    "action": "ask_clarification",
    "question": "what specific information you need"
}}
"""


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------
def build_system_prompt(catalog: ToolCatalog) -> str:
    """System message: tool catalog plus the three-action JSON contract."""
    return SYSTEM_PROMPT.format(tools=catalog.describe())


def build_initial_prompt(question: str, catalog: ToolCatalog) -> str:
    """Prompt for iteration 1: the question and the names of all known tools."""
    tool_names = ", ".join(catalog.names()) or "none"
    return (
        f"User question: '{question}'\n"
        f"Available tools: {tool_names}.\n"
        "Pick the first tool to call to answer this question, or answer directly / ask for "
        "clarification if no tool is needed. Reply with a single JSON object."
    )


def build_followup_prompt(question: str, tool_name: str, result_text: str) -> str:
    """Prompt for iteration > 1: the question and the previous tool's output only."""
    return (
        f"Answer: '{question}' based on result from: Previous tool '{tool_name}' : "
        f"returned: {result_text}.\n"
        "Decide the next step using this result: call another tool, answer the user, or ask "
        "for clarification. Reply with a single JSON object."
    )


def _summarize(exc: BaseException) -> str:
    lines = str(exc).strip().splitlines()
    return truncate(lines[0], 200) if lines else type(exc).__name__


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class AgentLoop:
    """
    Drive one question to a terminal state.

    Each iteration builds a prompt, asks the backend for a decision, and either executes a tool
    (feeding its output into the next prompt) or stops with an answer or a clarification request.
    The loop is bounded by ``max_iterations`` and never lets an exception escape :meth:`run`.
    """

    def __init__(
        self,
        backend: BaseBackend,
        invoker: ToolInvoker,
        settings: Settings | None = None,
        max_iterations: int | None = None,
    ) -> None:
        self._backend = backend
        self._invoker = invoker
        if max_iterations is None:
            max_iterations = settings.MAX_ITERATIONS if settings else DEFAULT_MAX_ITERATIONS
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.max_iterations = max_iterations
        self.state = LoopState.START
        self.trace: List[LoopState] = [LoopState.START]
        self._ready = False

    @property
    def catalog(self) -> ToolCatalog:
        return self._invoker.catalog

    def setup(self) -> None:
        """Send the system message to the backend; done once before the first run."""
        self._backend.set_system_message(build_system_prompt(self.catalog))
        self._ready = True

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def run(self, question: str, cancel_event: threading.Event | None = None) -> AgentResult:
        """
        Answer *question*.

        Parameters
        ----------
        question:
            The user's natural-language question.
        cancel_event:
            Optional event; when set, the loop stops before its next backend or tool call.

        Returns
        -------
        AgentResult
            The terminal state, the reply for the user, and the number of iterations used.
        """
        if not self._ready:
            self.setup()

        self.state = LoopState.START
        self.trace = [LoopState.START]
        logger.info("Processing user request: %s", question)

        conversation = ConversationState(
            original_question=question,
            current_prompt=build_initial_prompt(question, self.catalog),
            max_iterations=self.max_iterations,
        )
        try:
            return self._drive(conversation, cancel_event)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unexpected error while processing request")
            return self._finish(LoopState.INTERNAL_ERROR, FAILURE_REPLY, conversation.iteration)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _drive(
        self, conversation: ConversationState, cancel_event: threading.Event | None
    ) -> AgentResult:
        while not conversation.exhausted:
            iteration = conversation.iteration
            if cancel_event is not None and cancel_event.is_set():
                return self._finish(LoopState.CANCELLED, CANCELLED_REPLY, iteration - 1)

            self._transition(LoopState.DECIDING)
            logger.info("--- Iteration %d/%d ---", iteration, conversation.max_iterations)
            logger.debug("Prompt: %s", conversation.current_prompt)

            try:
                raw = self._backend.generate(conversation.current_prompt)
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Text-generation backend failed on iteration %d", iteration)
                return self._finish(
                    LoopState.INTERNAL_ERROR,
                    f"Sorry, an error occurred: {_summarize(exc)}",
                    iteration,
                )

            decision: AgentDecision = parse_decision(raw)
            logger.info("Decision: %s", decision.action)

            if isinstance(decision, CallTool):
                if cancel_event is not None and cancel_event.is_set():
                    return self._finish(LoopState.CANCELLED, CANCELLED_REPLY, iteration)
                self._transition(LoopState.TOOL_EXECUTING)
                result_text = self._execute(decision)
                conversation = conversation.advance(
                    build_followup_prompt(
                        conversation.original_question, decision.tool_name, result_text
                    )
                )
                continue

            if isinstance(decision, AnswerUser):
                return self._finish(LoopState.ANSWERED, decision.response, iteration)

            if isinstance(decision, AskClarification):
                logger.info("Need clarification: %s", decision.question)
                return self._finish(
                    LoopState.CLARIFICATION_ASKED,
                    f"I need more information: {decision.question}",
                    iteration,
                )

            logger.error("Invalid decision type: %r", decision)
            return self._finish(LoopState.INTERNAL_ERROR, FAILURE_REPLY, iteration)

        logger.error("Maximum iterations (%d) reached", conversation.max_iterations)
        return self._finish(
            LoopState.ITERATION_LIMIT_EXCEEDED, ITERATION_LIMIT_REPLY, conversation.max_iterations
        )

    def _execute(self, decision: CallTool) -> str:
        logger.info("Calling tool: %s", decision.tool_name)
        logger.info("Reason: %s", decision.reason)
        outcome = self._invoker.invoke(decision.tool_name, decision.parameters)
        text = outcome.as_text()
        if not outcome.ok:
            logger.warning("Tool execution failed: %s", outcome.error)
        else:
            logger.info("Tool '%s' returned: %s", decision.tool_name, truncate(text))
        return text

    def _transition(self, state: LoopState) -> None:
        self.state = state
        self.trace.append(state)

    def _finish(self, state: LoopState, reply: str, iterations: int) -> AgentResult:
        self._transition(state)
        logger.info("Finished in state %s after %d iteration(s)", state.value, iterations)
        return AgentResult(state=state, reply=reply, iterations=iterations)
