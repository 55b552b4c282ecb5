"""Wait step executor.

This module handles execution of wait steps by suspending the run for the
step's duration. The delay goes through an injected sleeper (asyncio.sleep
by default) so other runs keep progressing while this one waits, and tests
can substitute a fake clock.

Usage:
    from Aether.Core.playbook.executors.wait import execute_wait_step

    waited = await execute_wait_step(step, sleep=asyncio.sleep)
"""

import asyncio
import logging
from typing import Optional

import Aether.Helpers.logSettings as logLevel
from Aether.Core.playbook.models import Sleeper
from Aether.Core.playbook_parser import DEFAULT_WAIT_SECONDS, WaitStep

# Log Setup
logger = logging.getLogger(__name__)
logger.setLevel(logLevel.logSetup())


def resolve_wait_seconds(
    step: WaitStep, default_seconds: float = DEFAULT_WAIT_SECONDS
) -> float:
    """Duration a wait step should last; steps without one use the default.

    A zero duration counts as unset.
    """
    return step.seconds or default_seconds


async def execute_wait_step(
    step: WaitStep,
    sleep: Optional[Sleeper] = None,
    default_seconds: float = DEFAULT_WAIT_SECONDS,
) -> float:
    """
    Execute a wait step by suspending for its duration.

    Args:
        step: The WaitStep to execute
        sleep: Awaitable sleeper taking seconds (default: asyncio.sleep)
        default_seconds: Duration for steps that do not set one

    Returns:
        The number of seconds waited
    """
    seconds = resolve_wait_seconds(step, default_seconds)
    sleeper = sleep or asyncio.sleep

    logger.log(
        level=20,
        msg=f"Wait step starting: {seconds}s"
            + (f" ({step.desc})" if step.desc else ""),
    )

    await sleeper(seconds)

    logger.log(level=20, msg=f"Wait step completed after {seconds}s")

    return seconds
