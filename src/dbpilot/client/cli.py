"""Interactive CLI for dbpilot."""

from __future__ import annotations

import logging
from typing import Tuple

from dbpilot.agent.agent_loop import AgentLoop
from dbpilot.common import (
    AnsiColors,
    colored_print,
)
from dbpilot.core.schema import LoopState

logger = logging.getLogger(__name__)

_EXIT_WORDS = {"exit", "quit"}


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def show_result(state: LoopState, reply: str) -> None:
    """Print a finished run, colored by how it ended."""
    if state is LoopState.ANSWERED:
        colored_print("\n✅ Final Answer:", AnsiColors.GREEN)
        colored_print(reply, AnsiColors.GREEN)
    elif state is LoopState.CLARIFICATION_ASKED:
        colored_print(reply, AnsiColors.YELLOW)
    else:
        colored_print(f"❌ {reply}", AnsiColors.RED)


def run_cli(loop: AgentLoop) -> None:
    """Ask questions until the user types 'exit' or 'quit' (or hits Ctrl+C)."""
    colored_print("🤖 dbpilot ready! Type 'exit' to quit.", AnsiColors.CYAN)

    while True:
        colored_print("\n❓ Question: ", AnsiColors.YELLOW, end="")
        question, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if not question:
            continue
        if question.lower() in _EXIT_WORDS:
            break

        result = loop.run(question)
        show_result(result.state, result.reply)

    colored_print("👋 Goodbye!", AnsiColors.CYAN)
