"""
HTTP transport for the remote tool server.

Every call is a single JSON-RPC POST to ``settings.server_url``.  Failures of any kind (transport,
HTTP status, malformed body, server-reported error) come back as a failed
:class:`~dbpilot.core.schema.ToolInvocationResult` rather than an exception.
"""

import logging
from types import TracebackType
from typing import (
    Any,
    Dict,
    Optional,
    Type,
)

import httpx
from pydantic import ValidationError

from dbpilot.common import truncate
from dbpilot.config import Settings
from dbpilot.core.schema import ToolInvocationResult
from dbpilot.rpc.models import (
    JsonRpcRequest,
    JsonRpcResponse,
    new_request_id,
)

logger = logging.getLogger(__name__)


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        if message is None:
            return "Unknown error"
        return message if isinstance(message, str) else str(message)
    return error if isinstance(error, str) else str(error)


class JsonRpcClient:
    """Thin JSON-RPC client around :class:`httpx.Client`."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        self._url = settings.server_url
        self._timeout = settings.REQUEST_TIMEOUT_SECONDS
        self._client = http_client or httpx.Client(timeout=self._timeout)

    @property
    def url(self) -> str:
        return self._url

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def call(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        request_id: str | None = None,
    ) -> ToolInvocationResult:
        """
        Send one JSON-RPC request and decode the reply.

        Parameters
        ----------
        method:
            Remote method name.
        params:
            Keyword parameters for the method; ``{}`` if *None*.
        request_id:
            Request id to send; a fresh ``exec-xxxxxxxx`` id if *None*.

        Returns
        -------
        ToolInvocationResult
            The ``result`` member on success, otherwise a normalized error message.
        """
        request = JsonRpcRequest(
            method=method, params=params or {}, id=request_id or new_request_id()
        )
        payload = request.model_dump()
        logger.debug("JSON-RPC request to %s: %s", self._url, payload)

        try:
            response = self._client.post(self._url, json=payload)
        except httpx.TimeoutException as exc:
            logger.warning("JSON-RPC '%s' timed out after %ss", method, self._timeout)
            return ToolInvocationResult.failure(
                f"Timeout: request took longer than {self._timeout:g} seconds ({exc})"
            )
        except httpx.HTTPError as exc:
            logger.warning("JSON-RPC '%s' network error: %s", method, exc)
            return ToolInvocationResult.failure(f"Network error: {exc}")

        logger.debug(
            "JSON-RPC response %s: %s", response.status_code, truncate(response.text)
        )

        if not response.is_success:
            return ToolInvocationResult.failure(f"HTTP {response.status_code}: {response.text}")

        try:
            body = response.json()
        except ValueError as exc:
            return ToolInvocationResult.failure(f"Invalid JSON in response: {exc}")

        if not isinstance(body, dict):
            return ToolInvocationResult.failure(
                f"Invalid JSON-RPC response: expected an object, got {type(body).__name__}"
            )

        # Read the error member before validation so a loosely shaped error keeps its message
        if body.get("error") is not None:
            return ToolInvocationResult.failure(f"JSON-RPC Error: {_error_message(body['error'])}")

        try:
            rpc_response = JsonRpcResponse.model_validate(body)
        except ValidationError as exc:
            logger.debug("JSON-RPC response failed validation: %s", exc)
            return ToolInvocationResult.failure(
                f"Invalid JSON-RPC response: {exc.error_count()} invalid field(s)"
            )

        if not rpc_response.has_result:
            return ToolInvocationResult.failure("No result in response")
        return ToolInvocationResult.success(rpc_response.result)

    def close(self) -> None:
        """Release the underlying connection pool."""
        self._client.close()

    def __enter__(self) -> "JsonRpcClient":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()
