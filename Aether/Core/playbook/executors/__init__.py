"""Playbook step executors package.

This package contains the step handlers for the playbook actions:
- wait: Pause the run for a duration
- core_api: rescan_nodes, check_node, get_status and stop_playback against
  AETHER Core
- service: restart_service for allow-listed systemd units

Suggest steps have no executor; the runner handles them itself.

Usage:
    from Aether.Core.playbook.executors import (
        build_default_handlers,
        execute_wait_step,
    )

    handlers = build_default_handlers()
"""

from typing import Optional

# Wait executor
from Aether.Core.playbook.executors.wait import (
    execute_wait_step,
    resolve_wait_seconds,
)

# AETHER Core executor
from Aether.Core.playbook.executors.core_api import (
    CoreApiClient,
    DEFAULT_CORE_TIMEOUT,
    MAX_ERROR_BODY_SIZE,
)

# Service executor
from Aether.Core.playbook.executors.service import (
    ServiceRestarter,
    DEFAULT_RESTART_TIMEOUT,
    RESTART_COMMAND,
)

from Aether.Core.playbook.models import StepHandler
from Aether.Core.playbook_parser import StepAction


def build_default_handlers(config=None) -> dict[StepAction, StepHandler]:
    """
    Build the action -> handler table used by the runner.

    Args:
        config: Config instance (default: the global configuration)

    Returns:
        Handlers for every action except wait and suggest
    """
    if config is None:
        from config import get_config

        config = get_config()

    handlers: dict[StepAction, StepHandler] = {}
    handlers.update(
        CoreApiClient(
            config.core.base_url, timeout=config.core.timeout_seconds
        ).handlers()
    )

    restarter = ServiceRestarter(
        config.runner.restartable_services,
        timeout=config.runner.service_restart_timeout_seconds,
    )
    handlers[StepAction.RESTART_SERVICE] = restarter.restart_service

    return handlers


__all__ = [
    # Wait
    "execute_wait_step",
    "resolve_wait_seconds",
    # AETHER Core
    "CoreApiClient",
    "DEFAULT_CORE_TIMEOUT",
    "MAX_ERROR_BODY_SIZE",
    # Service
    "ServiceRestarter",
    "DEFAULT_RESTART_TIMEOUT",
    "RESTART_COMMAND",
    # Handler table
    "build_default_handlers",
]
