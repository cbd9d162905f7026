"""
HTTP API for dbpilot.

It exposes the following endpoints:
- **GET /health**  - liveness probe, including the remote tool server's health.
- **GET /tools**   - the tool catalog discovered at startup.
- **POST /ask**    - run the agent loop for one question: {"question": "..."}

Every request gets its own backend and :class:`AgentLoop`, so conversations never share history;
the catalog and the JSON-RPC client are shared read-only.
"""

import logging
from typing import Callable

from fastapi import (
    FastAPI,
    HTTPException,
)

from dbpilot.agent.agent_loop import AgentLoop
from dbpilot.agent.backend_interface import (
    BaseBackend,
    load_backend,
)
from dbpilot.agent.tool_invoker import ToolInvoker
from dbpilot.api.models import (
    AskRequest,
    AskResponse,
    HealthResponse,
    ToolsResponse,
)
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

BackendFactory = Callable[[Settings], BaseBackend]


def create_app(
    settings: Settings,
    catalog: ToolCatalog,
    client: JsonRpcClient,
    backend_factory: BackendFactory = load_backend,
) -> FastAPI:
    """Build the FastAPI application around an already-discovered catalog."""
    app = FastAPI(title="dbpilot API", version="0.1.0", description="dbpilot agent API")
    invoker = ToolInvoker(catalog, client)

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    @app.get("/health", response_model=HealthResponse, summary="Health check")
    def health() -> HealthResponse:
        """Return a liveness payload."""
        healthy = check_server_health(client)
        return HealthResponse(tool_server="healthy" if healthy else "unreachable")

    @app.get("/tools", response_model=ToolsResponse, summary="List discovered tools")
    def list_tools() -> ToolsResponse:
        return ToolsResponse(tools=catalog.list())

    @app.post("/ask", response_model=AskResponse, summary="Answer a question")
    def ask(req: AskRequest) -> AskResponse:
        """Run the agent loop to a terminal state for one question."""
        try:
            backend = backend_factory(settings)
        except DbPilotError as exc:
            logger.error("Could not create backend: %s", exc)
            raise HTTPException(status_code=503, detail=str(exc)) from exc

        loop = AgentLoop(backend, invoker, settings=settings)
        result = loop.run(req.question)
        return AskResponse(reply=result.reply, state=result.state, iterations=result.iterations)

    return app


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    settings: Settings,
    catalog: ToolCatalog,
    client: JsonRpcClient,
    host: str = "0.0.0.0",
    log_level: str | None = None,
) -> None:
    """Start a uvicorn server hosting the API.

    Parameters
    ----------
    settings, catalog, client:
        Shared state handed to :func:`create_app`.
    host:
        Bind address for the HTTP server; the port comes from ``settings.API_PORT``.
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info("Starting dbpilot API at %s:%d (log_level=%s)", host, settings.API_PORT, log_level)
    colored_print(
        f"dbpilot API is running at http://localhost:{settings.API_PORT}.", AnsiColors.GREEN
    )
    colored_print(
        f"Visit http://localhost:{settings.API_PORT}/docs for API documentation.", AnsiColors.BLUE
    )
    uvicorn.run(
        create_app(settings, catalog, client),
        host=host,
        port=settings.API_PORT,
        log_level=log_level,
    )
