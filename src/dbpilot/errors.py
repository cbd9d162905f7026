"""Exception types shared across dbpilot."""


class DbPilotError(RuntimeError):
    """Base class for all dbpilot errors."""


class ConfigurationError(DbPilotError):
    """Raised when a required setting is missing or invalid."""


class DiscoveryError(DbPilotError):
    """Raised when the tool catalog cannot be fetched or understood."""


class ToolExecutionError(DbPilotError):
    """Raised when a requested tool cannot run or fails.

    Never escapes :class:`dbpilot.agent.tool_invoker.ToolInvoker`; the invoker turns it into
    an error result so the agent loop can feed the text back to the model.
    """


class BackendError(DbPilotError):
    """Raised when a text-generation backend returns nothing usable."""
