"""Validates tool calls against the catalog, dispatches them over JSON-RPC, and wraps errors."""

import logging
from typing import (
    Any,
    Mapping,
)

from dbpilot.core.schema import ToolInvocationResult
from dbpilot.errors import ToolExecutionError
from dbpilot.rpc.client import JsonRpcClient
from dbpilot.rpc.models import new_request_id
from dbpilot.tools import (
    ToolCatalog,
    ToolDefinition,
)

logger = logging.getLogger(__name__)


def validate_parameters(tool: ToolDefinition, parameters: Mapping[str, Any]) -> None:
    """
    Check *parameters* against the declared parameter set of *tool*.

    Every declared parameter is required; undeclared keys are rejected.

    Raises
    ------
    ToolExecutionError
        Naming the first missing or unexpected parameter.
    """
    for param_name, info in tool.parameters.items():
        if param_name not in parameters:
            raise ToolExecutionError(
                f"Required parameter '{param_name}' is missing for tool '{tool.name}'. "
                f"Description: {info.description}"
            )

    for param_name in parameters:
        if param_name not in tool.parameters:
            allowed = ", ".join(tool.parameters) or "none"
            raise ToolExecutionError(
                f"Unknown parameter '{param_name}' for tool '{tool.name}'. "
                f"Available parameters: {allowed}"
            )


class ToolInvoker:
    """Invoke catalog tools on the remote server.

    :meth:`invoke` never raises: lookup, validation and transport failures all come back as a
    failed :class:`ToolInvocationResult` whose text the model can act on.
    """

    def __init__(self, catalog: ToolCatalog, client: JsonRpcClient) -> None:
        self._catalog = catalog
        self._client = client

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    def resolve(self, tool_name: str) -> ToolDefinition:
        """Look *tool_name* up case-insensitively, or raise listing the available tools."""
        tool = self._catalog.lookup(tool_name)
        if tool is None:
            available = ", ".join(self._catalog.names()) or "none"
            raise ToolExecutionError(
                f"Tool '{tool_name}' not found. Available tools: {available}"
            )
        return tool

    def invoke(
        self, tool_name: str, parameters: Mapping[str, Any] | None = None
    ) -> ToolInvocationResult:
        """
        Run *tool_name* with *parameters* on the remote server.

        Parameters
        ----------
        tool_name:
            Tool name as chosen by the model; matched case-insensitively.
        parameters:
            Parameter values; ``{}`` if *None*.

        Returns
        -------
        ToolInvocationResult
            The decoded ``result`` member, or an error message.  Exactly one remote request is
            made when validation passes, none otherwise.
        """
        if parameters is None:
            parameters = {}

        try:
            tool = self.resolve(tool_name)
            validate_parameters(tool, parameters)
        except ToolExecutionError as exc:
            logger.warning("Rejected call to '%s': %s", tool_name, exc)
            return ToolInvocationResult.failure(str(exc))

        request_id = new_request_id()
        logger.info("Executing %s [%s] with %s", tool.name, request_id, dict(parameters))
        outcome = self._client.call(tool.name, dict(parameters), request_id=request_id)

        if outcome.ok:
            logger.debug("Tool '%s' returned: %s", tool.name, outcome.value)
        else:
            logger.warning("Failed to execute tool '%s': %s", tool.name, outcome.error)
        return outcome
