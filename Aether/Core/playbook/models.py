"""Playbook run data models.

This module contains the data models passed in and out of the runner:
- RunStatus: Enum for the terminal state of one run
- ExecutionContext: Caller-owned input (confirmation flag, resume cursor)
- StepOutcome: One completed step
- ExecutionResult: The single result a run produces
- HandlerError: Raised by step handlers on failure
- StepHandler / Sleeper: Callable types for the runner's collaborators

Usage:
    from Aether.Core.playbook.models import ExecutionContext, RunStatus

    context = ExecutionContext(confirmed=True, resume_index=1)
    result = await runner.run("service_restart", context)
    if result.status == RunStatus.NEEDS_CONFIRM:
        ...
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from Aether.Core.playbook_parser import PlaybookStep


class HandlerError(Exception):
    """Raised by a step handler when its action could not be carried out."""

    def __init__(self, action: str, message: str):
        self.action = action
        self.message = message
        super().__init__(f"{action}: {message}")


class RunStatus(str, Enum):
    """Terminal state of a single run.

    States:
        NEEDS_CONFIRM: Paused at a confirm-gated step; resumable by a new
            call with confirmed=True
        SUGGESTION: Stopped at a suggest step
        COMPLETED: Every step ran
        UNKNOWN_PLAYBOOK: The playbook id is not registered
        STEP_FAILED: A step's handler failed; remaining steps were not run
    """

    NEEDS_CONFIRM = "needs_confirm"
    SUGGESTION = "suggestion"
    COMPLETED = "completed"
    UNKNOWN_PLAYBOOK = "unknown_playbook"
    STEP_FAILED = "step_failed"

    @classmethod
    def is_success(cls, status: "RunStatus") -> bool:
        """Check if status counts as a successful run."""
        return status in (cls.SUGGESTION, cls.COMPLETED)

    @classmethod
    def is_resumable(cls, status: "RunStatus") -> bool:
        """Check if the caller may re-invoke the playbook to continue."""
        return status == cls.NEEDS_CONFIRM


@dataclass(frozen=True)
class ExecutionContext:
    """Caller-supplied input for one run.

    Attributes:
        confirmed: The operator has approved confirm-gated steps
        resume_index: Step index to start from (default: first step)
        variables: Extra values for step handlers (e.g. node_id)
    """

    confirmed: bool = False
    resume_index: Optional[int] = None
    variables: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "ExecutionContext":
        """Build a context from the plain dict form.

        Accepts `resume_index` or `resumeIndex`; any other key is kept in
        `variables`.
        """
        if not data:
            return cls()

        data = dict(data)
        confirmed = data.pop("confirmed", False) is True
        resume_index = data.pop("resume_index", data.pop("resumeIndex", None))
        variables = dict(data.pop("variables", None) or {})
        variables.update(data)

        return cls(
            confirmed=confirmed,
            resume_index=resume_index,
            variables=variables,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "confirmed": self.confirmed,
            "resume_index": self.resume_index,
            "variables": self.variables,
        }


@dataclass
class StepOutcome:
    """One step that completed during a run.

    Attributes:
        step: Action name of the step
        index: Zero-based index of the step in the playbook
        done: Always True; failed steps produce a STEP_FAILED result instead
        observed: Value reported by the handler (e.g. a node's status)
    """

    step: str
    index: int
    done: bool = True
    observed: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {"step": self.step, "done": self.done}
        if self.observed is not None:
            data["observed"] = self.observed
        return data


@dataclass
class ExecutionResult:
    """The result of one run.

    Attributes:
        playbook_id: Requested playbook id
        status: Terminal state of the run
        results: Outcomes of the steps completed during this run
        step: The confirm-gated step (NEEDS_CONFIRM only)
        suggestion: Operator message (SUGGESTION only)
        error: Error text (UNKNOWN_PLAYBOOK, STEP_FAILED)
        failed_step: Action name of the failed step (STEP_FAILED only)
        resume_index: Where a follow-up call should start, if anywhere
        started_at: When the run started
        completed_at: When the run returned
    """

    playbook_id: str
    status: RunStatus
    results: list[StepOutcome] = field(default_factory=list)
    step: Optional["PlaybookStep"] = None
    suggestion: Optional[str] = None
    error: Optional[str] = None
    failed_step: Optional[str] = None
    resume_index: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return RunStatus.is_success(self.status)

    @property
    def needs_confirm(self) -> bool:
        return self.status == RunStatus.NEEDS_CONFIRM

    @property
    def is_terminal(self) -> bool:
        """False only when a confirmed follow-up call can continue the run."""
        return not RunStatus.is_resumable(self.status)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the dictionary shape callers and the UI consume.

        - needs_confirm: {needsConfirm, step, results, resumeIndex}
        - suggestion:    {success, suggestion, results[, resumeIndex]}
        - completed:     {success, results}
        - unknown:       {success: False, error}
        - step_failed:   {success: False, error, failedStep, results, resumeIndex}
        """
        results = [outcome.to_dict() for outcome in self.results]

        if self.status == RunStatus.NEEDS_CONFIRM:
            return {
                "needsConfirm": True,
                "step": self.step.to_dict() if self.step else None,
                "results": results,
                "resumeIndex": self.resume_index,
            }

        if self.status == RunStatus.SUGGESTION:
            data: dict[str, Any] = {
                "success": True,
                "suggestion": self.suggestion,
                "results": results,
            }
            if self.resume_index is not None:
                data["resumeIndex"] = self.resume_index
            return data

        if self.status == RunStatus.COMPLETED:
            return {"success": True, "results": results}

        if self.status == RunStatus.UNKNOWN_PLAYBOOK:
            return {"success": False, "error": self.error}

        return {
            "success": False,
            "error": self.error,
            "failedStep": self.failed_step,
            "results": results,
            "resumeIndex": self.resume_index,
        }


# Step handlers receive the step and the caller's context. They may be plain
# or async callables; returning False or raising marks the step as failed.
StepHandler = Callable[
    ["PlaybookStep", ExecutionContext], Union[Any, Awaitable[Any]]
]

# Sleeper used by wait steps (asyncio.sleep by default)
Sleeper = Callable[[float], Awaitable[Any]]
