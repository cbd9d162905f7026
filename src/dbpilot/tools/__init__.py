"""
Tool catalog for dbpilot.

Tools live on the remote server; this module fetches their definitions once through the ``getTools``
JSON-RPC method and offers case-insensitive lookup by name.  The catalog is read-only after
discovery, so it can be shared between conversations without locking.
"""

import logging
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Mapping,
    Sequence,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
)

from dbpilot.errors import DiscoveryError
from dbpilot.rpc.client import JsonRpcClient
from dbpilot.rpc.models import TOOLS_DISCOVERY_ID

logger = logging.getLogger(__name__)


class ToolParameter(BaseModel):
    """
    Information about a tool parameter.
    """

    model_config = ConfigDict(frozen=True)

    type: str = "string"
    description: str = ""


class ToolDefinition(BaseModel):
    """
    Schema for a remote tool
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    parameters: Dict[str, ToolParameter] = Field(default_factory=dict)


def _type_name(raw: Any) -> str:
    # JSON Schema allows a list of types, e.g. ["string", "null"]
    if isinstance(raw, list):
        return "|".join(str(item) for item in raw) or "string"
    return str(raw) if raw else "string"


def _text(raw: Any) -> str:
    if raw is None:
        return ""
    return raw if isinstance(raw, str) else str(raw)


def _parse_parameters(raw: Any, tool_name: str) -> Dict[str, ToolParameter]:
    """Read a JSON-Schema-like ``parameters`` block into ToolParameter objects."""
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise DiscoveryError(f"Tool '{tool_name}' has a non-object 'parameters' field")

    if "properties" in raw:
        properties = raw["properties"] or {}
    elif raw.get("type") == "object":
        properties = {}  # object schema without properties
    else:
        # Some servers send the property map directly instead of nesting it under "properties"
        properties = raw
    if not isinstance(properties, Mapping):
        raise DiscoveryError(f"Tool '{tool_name}' has a non-object 'properties' field")

    params: Dict[str, ToolParameter] = {}
    for param_name, info in properties.items():
        if not isinstance(info, Mapping):
            raise DiscoveryError(
                f"Parameter '{param_name}' of tool '{tool_name}' is not an object"
            )
        params[param_name] = ToolParameter(
            type=_type_name(info.get("type")),
            description=_text(info.get("description")),
        )
    return params


def parse_tool(raw: Any) -> ToolDefinition:
    """Build a :class:`ToolDefinition` from one entry of ``result.tools``."""
    if not isinstance(raw, Mapping):
        raise DiscoveryError(f"Tool entry is not an object: {raw!r}")
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise DiscoveryError(f"Tool entry has no name: {raw!r}")
    try:
        return ToolDefinition(
            name=name,
            description=_text(raw.get("description")),
            parameters=_parse_parameters(raw.get("parameters"), name),
        )
    except ValidationError as exc:
        raise DiscoveryError(f"Tool '{name}' has an invalid definition: {exc}") from exc


class ToolCatalog:
    """Immutable, ordered set of tools keyed case-insensitively by name."""

    def __init__(self, tools: Sequence[ToolDefinition] = ()) -> None:
        self._tools: List[ToolDefinition] = []
        self._by_key: Dict[str, ToolDefinition] = {}
        for tool in tools:
            key = tool.name.lower()
            if key in self._by_key:
                raise DiscoveryError(f"Duplicate tool name '{tool.name}' in catalog")
            self._tools.append(tool)
            self._by_key[key] = tool

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #
    @classmethod
    def from_response(cls, result: Any) -> "ToolCatalog":
        """
        Build a catalog from the ``result`` member of a ``getTools`` response.

        Raises
        ------
        DiscoveryError
            If ``result.tools`` is missing, is not an array, or holds malformed entries.
        """
        if not isinstance(result, Mapping) or "tools" not in result:
            raise DiscoveryError("Response received but no tools found in result")
        raw_tools = result["tools"]
        if not isinstance(raw_tools, list):
            raise DiscoveryError("'result.tools' is not an array")
        return cls([parse_tool(raw) for raw in raw_tools])

    @classmethod
    def discover(cls, client: JsonRpcClient) -> "ToolCatalog":
        """
        Fetch the catalog from the remote server with a single ``getTools`` call.

        No retry is attempted; the caller decides what to do with a :class:`DiscoveryError`.
        """
        logger.info("Sending tool discovery request to %s", client.url)
        outcome = client.call("getTools", {}, request_id=TOOLS_DISCOVERY_ID)
        if not outcome.ok:
            raise DiscoveryError(f"Failed to discover tools: {outcome.error}")

        catalog = cls.from_response(outcome.value)
        logger.info("Discovered %d tools from server: %s", len(catalog), catalog.names())
        return catalog

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def lookup(self, name: str) -> ToolDefinition | None:
        """Case-insensitive exact match on the tool name."""
        return self._by_key.get(name.lower())

    def list(self) -> List[ToolDefinition]:
        """All tools in discovery order."""
        return list(self._tools)

    def names(self) -> List[str]:
        return [tool.name for tool in self._tools]

    def describe(self) -> str:
        """Render the catalog as the tool section of the system message."""
        lines: List[str] = []
        for tool in self._tools:
            lines.append(f"- {tool.name}: {tool.description}")
            if tool.parameters:
                lines.append("  REQUIRED Parameters:")
                for param_name, info in tool.parameters.items():
                    lines.append(f"    - {param_name} ({info.type}): {info.description}")
            else:
                lines.append("  Parameters: none")
            lines.append("")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._by_key
