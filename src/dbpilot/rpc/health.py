"""Liveness probe for the remote tool server."""

import logging

from dbpilot.rpc.client import JsonRpcClient
from dbpilot.rpc.models import HEALTH_CHECK_ID

logger = logging.getLogger(__name__)


def check_server_health(client: JsonRpcClient) -> bool:
    """Return True if the server answers ``health`` with ``status == "healthy"``."""
    outcome = client.call("health", {}, request_id=HEALTH_CHECK_ID)
    if not outcome.ok:
        logger.warning("Health check against %s failed: %s", client.url, outcome.error)
        return False

    status = outcome.value.get("status") if isinstance(outcome.value, dict) else None
    if status != "healthy":
        logger.warning("Server at %s reported status %r", client.url, status)
        return False
    return True
