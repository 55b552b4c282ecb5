"""Playbook runner for AETHER.

This module executes a registered playbook's steps in order against the
injected step handlers and returns a single ExecutionResult per call.

A run stops at the first of:
- a confirm-gated step the caller has not confirmed (needs_confirm)
- a suggest step (suggestion)
- a failing step handler (step_failed)
- the end of the playbook (completed)

The runner keeps no state between calls. Callers continue a paused run by
calling again with `confirmed=True` and the `resume_index` from the previous
result; without a resume index every call starts at the first step.

Wait steps are the only place the runner itself suspends. Synchronous
handlers run in a worker thread so waits of concurrent runs keep
progressing.

Usage:
    from Aether.Core.playbook_runner import PlaybookRunner

    runner = PlaybookRunner()
    result = await runner.run("node_recovery", {"node_id": "node-1"})
    if result.needs_confirm:
        result = await runner.run(
            "node_recovery",
            {"confirmed": True, "resume_index": result.resume_index},
        )
"""
import asyncio
import inspect
import logging
from typing import Any, Dict, Mapping, Optional, Union

import Aether.Helpers.logSettings as logLevel
from Aether.Core.logging_config import bind_playbook
from Aether.Core.metrics import (
    record_confirmation_requested,
    record_playbook_run,
    record_playbook_run_duration,
    record_step,
)
from Aether.Core.playbook.executors.wait import execute_wait_step
from Aether.Core.playbook.models import (
    ExecutionContext,
    ExecutionResult,
    RunStatus,
    Sleeper,
    StepHandler,
    StepOutcome,
)
from Aether.Core.playbook_parser import (
    CheckNodeStep,
    Playbook,
    PlaybookStep,
    StepAction,
    SuggestStep,
    WaitStep,
)
from Aether.Core.playbook_registry import PlaybookRegistry, get_registry
from Aether.Core.telemetry import playbook_span, span_trace_id
from Aether.Core.utils.datetime_helpers import elapsed_seconds
from Aether.Core.utils.datetime_helpers import now as get_now

# Log Setup
logger = logging.getLogger(__name__)
logger.setLevel(logLevel.logSetup())


UNKNOWN_PLAYBOOK_ERROR = "Unknown playbook"
INVALID_RESUME_INDEX_ERROR = "Invalid resume index"

RunContext = Union[ExecutionContext, Mapping[str, Any], None]


class PlaybookRunner:
    """
    Executes playbooks from a registry.

    Args:
        registry: Playbooks to run (default: the process-wide registry)
        handlers: Action -> handler mapping (default: build_default_handlers())
        sleep: Awaitable sleeper for wait steps (default: asyncio.sleep)
        default_wait_seconds: Duration for wait steps that do not set one
            (default: AETHER_DEFAULT_WAIT_SECONDS)
    """

    def __init__(
        self,
        registry: Optional[PlaybookRegistry] = None,
        handlers: Optional[Mapping[StepAction, StepHandler]] = None,
        sleep: Optional[Sleeper] = None,
        default_wait_seconds: Optional[float] = None,
    ):
        if registry is None:
            registry = get_registry()
        if handlers is None:
            from Aether.Core.playbook.executors import build_default_handlers

            handlers = build_default_handlers()
        if default_wait_seconds is None:
            from config import get_config

            default_wait_seconds = get_config().runner.default_wait_seconds

        self.registry = registry
        self.default_wait_seconds = default_wait_seconds
        self._handlers: Dict[StepAction, StepHandler] = {
            StepAction(action): handler for action, handler in handlers.items()
        }
        self._sleep: Sleeper = sleep or asyncio.sleep

    async def run(
        self, playbook_id: str, context: RunContext = None
    ) -> ExecutionResult:
        """
        Run a playbook once.

        Never raises for playbook or handler failures; those are reported
        through the result's status.

        Args:
            playbook_id: Id of the playbook to run
            context: ExecutionContext, its dict form, or None

        Returns:
            ExecutionResult describing where the run stopped
        """
        if not isinstance(context, ExecutionContext):
            context = ExecutionContext.from_dict(context)

        started_at = get_now()
        playbook = self.registry.lookup(playbook_id)

        with playbook_span(playbook_id, context.confirmed) as span, \
                bind_playbook(playbook_id):
            if playbook is None:
                logger.log(
                    level=30,
                    msg=f"Cannot run playbook '{playbook_id}': not registered",
                )
                result = ExecutionResult(
                    playbook_id=playbook_id,
                    status=RunStatus.UNKNOWN_PLAYBOOK,
                    error=UNKNOWN_PLAYBOOK_ERROR,
                )
            else:
                result = await self._execute_steps(playbook, context)

            span.set_attribute("playbook.status", result.status.value)
            trace_id = span_trace_id(span)

        result.started_at = started_at
        result.completed_at = get_now()

        risk = playbook.risk.value if playbook else "unknown"
        record_playbook_run(playbook_id, result.status.value, risk)
        record_playbook_run_duration(
            playbook_id,
            elapsed_seconds(started_at, result.completed_at),
            trace_id=trace_id,
        )
        if result.status == RunStatus.NEEDS_CONFIRM:
            record_confirmation_requested(playbook_id)

        logger.log(
            level=20,
            msg=f"Playbook '{playbook_id}' finished with status "
                f"{result.status.value} ({len(result.results)} steps run)",
        )

        return result

    def _start_index(
        self, playbook: Playbook, context: ExecutionContext
    ) -> Optional[int]:
        """First step to run, or None if the resume index is unusable."""
        index = context.resume_index
        if index is None:
            return 0
        if isinstance(index, bool) or not isinstance(index, int):
            return None
        if 0 <= index < len(playbook.steps):
            return index
        return None

    async def _execute_steps(
        self, playbook: Playbook, context: ExecutionContext
    ) -> ExecutionResult:
        """
        Execute playbook steps starting from the resume index.

        Args:
            playbook: The playbook to run
            context: The caller's context

        Returns:
            ExecutionResult for the step the run stopped at
        """
        start = self._start_index(playbook, context)
        if start is None:
            logger.log(
                level=40,
                msg=f"Playbook '{playbook.id}': invalid resume index "
                    f"{context.resume_index!r} ({len(playbook.steps)} steps)",
            )
            return ExecutionResult(
                playbook_id=playbook.id,
                status=RunStatus.STEP_FAILED,
                error=f"{INVALID_RESUME_INDEX_ERROR}: {context.resume_index!r}",
            )

        results: list[StepOutcome] = []
        total_steps = len(playbook.steps)

        for index in range(start, total_steps):
            step = playbook.steps[index]
            action = step.action.value

            if step.confirm and not context.confirmed:
                logger.log(
                    level=20,
                    msg=f"Playbook '{playbook.id}' paused at step {index} "
                        f"({action}): confirmation required",
                )
                return ExecutionResult(
                    playbook_id=playbook.id,
                    status=RunStatus.NEEDS_CONFIRM,
                    results=results,
                    step=step,
                    resume_index=index,
                )

            if isinstance(step, SuggestStep):
                logger.log(
                    level=20,
                    msg=f"Playbook '{playbook.id}' suggestion: {step.message}",
                )
                return ExecutionResult(
                    playbook_id=playbook.id,
                    status=RunStatus.SUGGESTION,
                    results=results,
                    suggestion=step.message,
                    resume_index=index + 1 if index + 1 < total_steps else None,
                )

            logger.log(
                level=20,
                msg=f"Playbook '{playbook.id}': executing step "
                    f"{index + 1}/{total_steps}: {action}",
            )

            try:
                observed = await self._execute_step(step, context)
            except Exception as e:
                record_step(action, "failed")
                error = str(e) or type(e).__name__
                logger.log(
                    level=40,
                    msg=f"Playbook '{playbook.id}' step {index} ({action}) "
                        f"failed: {error}",
                )
                return ExecutionResult(
                    playbook_id=playbook.id,
                    status=RunStatus.STEP_FAILED,
                    results=results,
                    error=error,
                    failed_step=action,
                    resume_index=index,
                )

            record_step(action, "completed")
            if isinstance(step, CheckNodeStep):
                self._verify_node(playbook, step, observed)

            results.append(
                StepOutcome(step=action, index=index, observed=observed)
            )

        return ExecutionResult(
            playbook_id=playbook.id,
            status=RunStatus.COMPLETED,
            results=results,
        )

    async def _execute_step(
        self, step: PlaybookStep, context: ExecutionContext
    ) -> Any:
        """
        Execute one non-suggest step.

        Returns:
            The value the handler observed, or None

        Raises:
            Exception: Whatever the handler raised; RuntimeError when no
                handler is registered or the handler returned False
        """
        if isinstance(step, WaitStep):
            await execute_wait_step(
                step,
                sleep=self._sleep,
                default_seconds=self.default_wait_seconds,
            )
            return None

        handler = self._handlers.get(step.action)
        if handler is None:
            raise RuntimeError(f"No handler for action: {step.action.value}")

        if inspect.iscoroutinefunction(handler):
            value = await handler(step, context)
        else:
            value = await asyncio.to_thread(handler, step, context)
            if inspect.isawaitable(value):
                value = await value

        if value is False:
            raise RuntimeError(f"{step.action.value} reported failure")
        if value is True:
            return None
        return value

    def _verify_node(
        self, playbook: Playbook, step: CheckNodeStep, observed: Any
    ) -> None:
        """Log when a node's status differs from what the step expects."""
        if observed is None or not step.verify:
            return
        if str(observed) != step.verify:
            logger.log(
                level=30,
                msg=f"Playbook '{playbook.id}': node status '{observed}' "
                    f"does not match expected '{step.verify}'",
            )


# ============================================================================
# Module-level convenience functions
# ============================================================================

# Global runner instance
_runner: Optional[PlaybookRunner] = None


def get_runner() -> PlaybookRunner:
    """Get the global playbook runner instance."""
    global _runner
    if _runner is None:
        _runner = PlaybookRunner()
    return _runner


def reset_runner() -> None:
    """Drop the cached global runner."""
    global _runner
    _runner = None


async def run_playbook(
    playbook_id: str, context: RunContext = None
) -> ExecutionResult:
    """
    Convenience function to run a playbook with the global runner.

    Args:
        playbook_id: Id of the playbook to run
        context: ExecutionContext, its dict form, or None

    Returns:
        ExecutionResult
    """
    return await get_runner().run(playbook_id, context)


def run_playbook_sync(
    playbook_id: str, context: RunContext = None
) -> ExecutionResult:
    """
    Run a playbook from synchronous code (Flask views, the CLI).

    Must not be called from inside a running event loop.
    """
    return asyncio.run(run_playbook(playbook_id, context))
