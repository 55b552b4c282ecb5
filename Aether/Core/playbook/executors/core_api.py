"""AETHER Core API step handlers.

This module implements the playbook actions that talk to AETHER Core over
HTTP:
- rescan_nodes: POST /api/nodes/scan
- check_node: GET /api/nodes/<node_id> (or /api/nodes/online)
- get_status: GET /api/playback/status
- stop_playback: POST /api/playback/stop

Every handler takes (step, context). Transport errors, non-2xx responses
and unreadable bodies raise HandlerError; the runner turns that into a
failed-step result.

Usage:
    from Aether.Core.playbook.executors.core_api import CoreApiClient

    client = CoreApiClient("http://localhost:8891")
    handlers = client.handlers()
"""

import logging
from typing import Any, Callable, Dict, Optional

import requests

import Aether.Helpers.logSettings as logLevel
from Aether.Core.playbook.models import (
    ExecutionContext,
    HandlerError,
    StepHandler,
)
from Aether.Core.playbook_parser import (
    CheckNodeStep,
    PlaybookStep,
    StepAction,
)

# Log Setup
logger = logging.getLogger(__name__)
logger.setLevel(logLevel.logSetup())


# HTTP timeout for AETHER Core requests (seconds)
DEFAULT_CORE_TIMEOUT = 10

# Maximum response body size to quote in error messages
MAX_ERROR_BODY_SIZE = 512


class CoreApiClient:
    """
    HTTP client for the AETHER Core endpoints the playbooks use.

    Args:
        base_url: AETHER Core base URL (e.g. http://localhost:8891)
        timeout: Per-request timeout in seconds
        http_client: Optional replacement for requests.request (testing)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_CORE_TIMEOUT,
        http_client: Optional[Callable[..., requests.Response]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client or requests.request

    def _request(
        self,
        action: StepAction,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make a request and return the decoded JSON body (or None)."""
        url = f"{self.base_url}{path}"

        logger.log(level=10, msg=f"{action.value}: {method} {url}")

        try:
            response = self._client(
                method=method,
                url=url,
                headers={"Content-Type": "application/json"},
                json=body,
                timeout=self.timeout,
            )
        except requests.Timeout:
            raise HandlerError(
                action.value, f"Request timed out after {self.timeout}s: {method} {path}"
            )
        except requests.RequestException as e:
            raise HandlerError(action.value, f"Request failed: {method} {path}: {e}")

        if not 200 <= response.status_code < 300:
            body_text = (response.text or "")[:MAX_ERROR_BODY_SIZE]
            raise HandlerError(
                action.value,
                f"{method} {path} returned HTTP {response.status_code}: {body_text}",
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError:
            raise HandlerError(action.value, f"{method} {path} returned invalid JSON")

    def rescan_nodes(self, step: PlaybookStep, context: ExecutionContext) -> None:
        """Trigger node discovery."""
        self._request(StepAction.RESCAN_NODES, "POST", "/api/nodes/scan")
        logger.log(level=20, msg="Node discovery triggered")

    def check_node(self, step: PlaybookStep, context: ExecutionContext) -> str:
        """
        Report a node's status.

        The node comes from the caller's context (`node_id`) or the step's
        params. Without a node id, reports "online" when any node is online
        and "offline" otherwise.

        Returns:
            The observed status string
        """
        node_id = context.variables.get("node_id")
        if not node_id and isinstance(step, CheckNodeStep):
            node_id = step.node_id

        if node_id:
            node = self._request(StepAction.CHECK_NODE, "GET", f"/api/nodes/{node_id}")
            if not isinstance(node, dict):
                raise HandlerError(
                    StepAction.CHECK_NODE.value, f"Unexpected node payload for {node_id}"
                )
            status = str(node.get("status") or "unknown")
        else:
            online = self._request(StepAction.CHECK_NODE, "GET", "/api/nodes/online")
            status = "online" if online else "offline"

        logger.log(
            level=20,
            msg=f"Node {node_id or '(any)'} status: {status}",
        )
        return status

    def get_status(
        self, step: PlaybookStep, context: ExecutionContext
    ) -> Dict[str, Any]:
        """
        Fetch playback state.

        Returns:
            Summary with the playing flag and the number of active sessions
        """
        status = self._request(StepAction.GET_STATUS, "GET", "/api/playback/status")
        if not isinstance(status, dict):
            raise HandlerError(
                StepAction.GET_STATUS.value, "Unexpected playback status payload"
            )

        sessions = status.get("sessions") or []
        summary = {
            "playing": bool(status.get("playing", sessions)),
            "sessions": len(sessions),
        }
        logger.log(level=20, msg=f"Playback status: {summary}")
        return summary

    def stop_playback(self, step: PlaybookStep, context: ExecutionContext) -> None:
        """Force-stop all playback."""
        self._request(StepAction.STOP_PLAYBACK, "POST", "/api/playback/stop", body={})
        logger.log(level=20, msg="Playback stopped")

    def handlers(self) -> Dict[StepAction, StepHandler]:
        """Action -> handler mapping for the runner."""
        return {
            StepAction.RESCAN_NODES: self.rescan_nodes,
            StepAction.CHECK_NODE: self.check_node,
            StepAction.GET_STATUS: self.get_status,
            StepAction.STOP_PLAYBACK: self.stop_playback,
        }
