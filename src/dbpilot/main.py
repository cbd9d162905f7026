"""
dbpilot entry point.

This file handles startup concerns (arg-parsing, settings, logging), checks the remote tool server,
discovers its tools, and launches the appropriate interface (CLI or API).
"""

import argparse
import logging
import sys

from dbpilot.agent.agent_loop import AgentLoop
from dbpilot.agent.backend_interface import load_backend
from dbpilot.agent.tool_invoker import ToolInvoker
from dbpilot.common import (
    AnsiColors,
    colored_print,
)
from dbpilot.config import Settings
from dbpilot.errors import DbPilotError
from dbpilot.rpc.client import JsonRpcClient
from dbpilot.rpc.health import check_server_health
from dbpilot.tools import ToolCatalog

logger = logging.getLogger(__name__)

_SECRET_FIELDS = {"OPENAI_API_KEY", "DEEPSEEK_API_KEY", "GEMINI_API_KEY", "ANTHROPIC_API_KEY"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Keep request-level chatter out of the console
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the dbpilot application.

    Returns the process exit code: 0 on a clean exit, 1 if the tool server is unhealthy, tool
    discovery fails, or the backend cannot be configured.
    """
    if argv is None:
        argv = sys.argv[1:]

    settings = Settings()

    parser = argparse.ArgumentParser(description="Ask questions of a database through an LLM")
    parser.add_argument(
        "--mode",
        choices=["cli", "api"],
        type=str.lower,
        default="cli",
        help="Launch the interactive CLI or the REST API (default: cli)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    args = parser.parse_args(argv)

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level
    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting dbpilot [%s mode]", args.mode)
    logger.debug("Settings: %s", settings.model_dump(exclude=_SECRET_FIELDS))
    colored_print(f"Server URL: {settings.server_url}", AnsiColors.CYAN)

    with JsonRpcClient(settings) as client:
        if not check_server_health(client):
            colored_print("Server is not responding", AnsiColors.RED)
            return 1
        colored_print("Server is healthy!", AnsiColors.GREEN)

        try:
            catalog = ToolCatalog.discover(client)
        except DbPilotError as exc:
            logger.error("%s", exc)
            colored_print("Failed to discover tools", AnsiColors.RED)
            return 1
        colored_print(f"✅ Discovered {len(catalog)} tools from server", AnsiColors.GREEN)

        if args.mode == "api":
            # Lazy import to avoid web dependencies if not needed
            from dbpilot.api.app import run_api  # pylint: disable=import-outside-toplevel

            run_api(settings, catalog, client)
            return 0

        try:
            backend = load_backend(settings)
        except DbPilotError as exc:
            colored_print(f"Error: {exc}", AnsiColors.RED)
            return 1
        colored_print(f"Using {settings.LLM_PROVIDER} as LLM provider", AnsiColors.CYAN)

        # Lazy import to avoid CLI dependencies if not needed
        from dbpilot.client.cli import run_cli  # pylint: disable=import-outside-toplevel

        loop = AgentLoop(backend, ToolInvoker(catalog, client), settings=settings)
        run_cli(loop)
    return 0


if __name__ == "__main__":
    sys.exit(main())
