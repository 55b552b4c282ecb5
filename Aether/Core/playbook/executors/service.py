"""Service restart step executor.

This module handles restart_service steps by restarting a systemd unit on
the host running AETHER.

Security Model:
    Only services on the configured allow-list (AETHER_RESTARTABLE_SERVICES)
    can be restarted. The command is passed as an argument list, never
    through a shell.

Usage:
    from Aether.Core.playbook.executors.service import ServiceRestarter

    restarter = ServiceRestarter(["aether-core"])
    restarter.restart_service(step, context)
"""

import logging
import subprocess
from typing import Callable, Iterable, Optional

import Aether.Helpers.logSettings as logLevel
from Aether.Core.playbook.models import ExecutionContext, HandlerError
from Aether.Core.playbook_parser import (
    PlaybookStep,
    RestartServiceStep,
    StepAction,
)

# Log Setup
logger = logging.getLogger(__name__)
logger.setLevel(logLevel.logSetup())


# Default timeout for a restart command (seconds)
DEFAULT_RESTART_TIMEOUT = 30

# Maximum command output to quote in error messages
MAX_RESTART_OUTPUT_SIZE = 1024

# Command prefix; the service name is appended
RESTART_COMMAND = ["sudo", "-n", "systemctl", "restart"]


class ServiceRestarter:
    """
    Restarts allow-listed services with systemctl.

    Args:
        allowed_services: Service names that may be restarted
        timeout: Seconds to wait for the restart command
        runner: Replacement for subprocess.run (testing)
    """

    def __init__(
        self,
        allowed_services: Iterable[str],
        timeout: int = DEFAULT_RESTART_TIMEOUT,
        runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
    ):
        self.allowed_services = frozenset(allowed_services)
        self.timeout = timeout
        self._run = runner or subprocess.run

    def restart_service(
        self, step: PlaybookStep, context: ExecutionContext
    ) -> None:
        """
        Restart the service named by the step.

        Raises:
            HandlerError: If the service is not allow-listed, the command
                cannot be started, times out or exits non-zero
        """
        action = StepAction.RESTART_SERVICE.value
        service = step.service if isinstance(step, RestartServiceStep) else ""

        if not service:
            raise HandlerError(action, "No service specified")

        if service not in self.allowed_services:
            logger.log(
                level=30,
                msg=f"Refusing to restart '{service}': not in restartable services",
            )
            raise HandlerError(action, f"Service '{service}' is not restartable")

        command = RESTART_COMMAND + [service]
        logger.log(
            level=20,
            msg=f"Restarting service '{service}' (timeout: {self.timeout}s)",
        )

        try:
            proc = self._run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise HandlerError(
                action, f"Restart of '{service}' timed out after {self.timeout}s"
            )
        except OSError as e:
            raise HandlerError(action, f"Could not run restart command: {e}")

        if proc.returncode != 0:
            output = ((proc.stderr or "") + (proc.stdout or "")).strip()
            output = output[:MAX_RESTART_OUTPUT_SIZE]
            raise HandlerError(
                action,
                f"Restart of '{service}' failed (exit code {proc.returncode})"
                + (f": {output}" if output else ""),
            )

        logger.log(level=20, msg=f"Service '{service}' restarted")
