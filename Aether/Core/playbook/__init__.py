"""Playbook execution package.

This package provides the data models passed in and out of the runner
(RunStatus, ExecutionContext, StepOutcome, ExecutionResult, HandlerError).
Step handlers live in the `executors` subpackage.

Usage:
    from Aether.Core.playbook import (
        ExecutionContext,
        ExecutionResult,
        RunStatus,
    )
"""

# Models
from Aether.Core.playbook.models import (
    ExecutionContext,
    ExecutionResult,
    HandlerError,
    RunStatus,
    Sleeper,
    StepHandler,
    StepOutcome,
)

__all__ = [
    "ExecutionContext",
    "ExecutionResult",
    "HandlerError",
    "RunStatus",
    "Sleeper",
    "StepHandler",
    "StepOutcome",
]
