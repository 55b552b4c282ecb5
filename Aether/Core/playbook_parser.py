"""Playbook definition parser for AETHER.

This module defines the step types a remediation playbook may contain and
parses/validates playbook definitions, either from plain dictionaries (the
built-in playbook table) or from YAML (operator-supplied playbook files).

Supported step actions:
- wait: Pause execution for a number of seconds
- rescan_nodes: Trigger node discovery on AETHER Core
- check_node: Query a node's status
- get_status: Fetch playback state from AETHER Core
- stop_playback: Force-stop all playback
- restart_service: Restart a named system service
- suggest: Stop and hand a message back to the operator

Any step may set `confirm: true`, which makes the runner pause until the
caller supplies `confirmed: true`.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

DEFAULT_WAIT_SECONDS = 5


class StepAction(str, Enum):
    """Supported playbook step actions."""

    WAIT = "wait"
    RESCAN_NODES = "rescan_nodes"
    CHECK_NODE = "check_node"
    GET_STATUS = "get_status"
    STOP_PLAYBACK = "stop_playback"
    RESTART_SERVICE = "restart_service"
    SUGGEST = "suggest"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if a value is a valid step action."""
        try:
            cls(value.lower())
            return True
        except ValueError:
            return False


class RiskLevel(str, Enum):
    """Risk level of a playbook. Descriptive only."""

    LOW = "low"
    HIGH = "high"


def _base_dict(step: "PlaybookStep") -> dict[str, Any]:
    data: dict[str, Any] = {"action": step.action.value, "confirm": step.confirm}
    if step.desc:
        data["desc"] = step.desc
    return data


@dataclass(frozen=True)
class WaitStep:
    """Pause for a duration before the next step."""

    action: ClassVar[StepAction] = StepAction.WAIT

    # None means the runner's default wait
    seconds: Optional[float] = None
    confirm: bool = False
    desc: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        data = _base_dict(self)
        if self.seconds is not None:
            data["params"] = {"seconds": self.seconds}
        return data


@dataclass(frozen=True)
class RescanNodesStep:
    """Trigger node discovery."""

    action: ClassVar[StepAction] = StepAction.RESCAN_NODES

    confirm: bool = False
    desc: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return _base_dict(self)


@dataclass(frozen=True)
class CheckNodeStep:
    """Query a node's status and compare it with the expected one."""

    action: ClassVar[StepAction] = StepAction.CHECK_NODE

    verify: str = "online"
    node_id: Optional[str] = None
    confirm: bool = False
    desc: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        data = _base_dict(self)
        data["verify"] = self.verify
        if self.node_id:
            data["params"] = {"node_id": self.node_id}
        return data


@dataclass(frozen=True)
class GetStatusStep:
    """Fetch playback state from AETHER Core."""

    action: ClassVar[StepAction] = StepAction.GET_STATUS

    confirm: bool = False
    desc: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return _base_dict(self)


@dataclass(frozen=True)
class StopPlaybackStep:
    """Force-stop all playback."""

    action: ClassVar[StepAction] = StepAction.STOP_PLAYBACK

    confirm: bool = False
    desc: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return _base_dict(self)


@dataclass(frozen=True)
class RestartServiceStep:
    """Restart a named system service."""

    action: ClassVar[StepAction] = StepAction.RESTART_SERVICE

    service: str = ""
    confirm: bool = False
    desc: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        data = _base_dict(self)
        data["params"] = {"service": self.service}
        return data


@dataclass(frozen=True)
class SuggestStep:
    """Stop the run and return a message for the operator."""

    action: ClassVar[StepAction] = StepAction.SUGGEST

    message: str = ""
    confirm: bool = False
    desc: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        data = _base_dict(self)
        data["message"] = self.message
        return data


# Union type for all step types
PlaybookStep = Union[
    WaitStep,
    RescanNodesStep,
    CheckNodeStep,
    GetStatusStep,
    StopPlaybackStep,
    RestartServiceStep,
    SuggestStep,
]


@dataclass(frozen=True)
class Playbook:
    """Parsed playbook definition."""

    id: str
    trigger: str
    steps: tuple[PlaybookStep, ...]
    risk: RiskLevel = RiskLevel.LOW
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        data: dict[str, Any] = {
            "id": self.id,
            "trigger": self.trigger,
            "risk": self.risk.value,
            "steps": [step.to_dict() for step in self.steps],
        }
        if self.description:
            data["description"] = self.description
        if self.metadata:
            data["metadata"] = self.metadata
        return data


class PlaybookParseError(Exception):
    """Exception raised when playbook parsing fails."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        self.message = message
        super().__init__(f"{message}" if not field else f"Field '{field}': {message}")


def _parse_duration(duration_str: str) -> float:
    """
    Parse a duration string to seconds.

    Supports formats:
    - "30s", "30" or "0.5" -> seconds
    - "5m" -> 300 seconds (5 minutes)
    - "1h" -> 3600 seconds (1 hour)

    Raises:
        ValueError: If format is invalid
    """
    if duration_str is None or str(duration_str).strip() == "":
        raise ValueError("Duration cannot be empty")

    duration_str = str(duration_str).strip().lower()

    match = re.match(r"^(\d+(?:\.\d+)?)(s|m|h)?$", duration_str)
    if not match:
        raise ValueError(
            f"Invalid duration format: '{duration_str}'. "
            "Expected number with optional unit (s/m/h)"
        )

    value = float(match.group(1))
    unit = match.group(2) or "s"

    if unit == "m":
        value *= 60
    elif unit == "h":
        value *= 3600

    return int(value) if value.is_integer() else value


def _get_params(step_data: dict[str, Any]) -> dict[str, Any]:
    params = step_data.get("params", {})
    if params is None:
        return {}
    if not isinstance(params, dict):
        raise PlaybookParseError("Params must be a dictionary", "params")
    return params


def _parse_common(step_data: dict[str, Any]) -> dict[str, Any]:
    """Parse the fields every step carries (confirm, desc)."""
    confirm = step_data.get("confirm", False)
    if not isinstance(confirm, bool):
        raise PlaybookParseError("confirm must be a boolean", "confirm")

    desc = step_data.get("desc")
    if desc is not None and not isinstance(desc, str):
        raise PlaybookParseError("desc must be a string", "desc")

    return {"confirm": confirm, "desc": desc}


def _parse_wait_step(step_data: dict[str, Any]) -> WaitStep:
    params = _get_params(step_data)
    raw = params.get("seconds", step_data.get("duration"))

    if raw is None:
        seconds: Optional[float] = None
    elif isinstance(raw, bool):
        raise PlaybookParseError("Wait seconds must be a number", "params.seconds")
    else:
        try:
            seconds = _parse_duration(str(raw))
        except ValueError as e:
            raise PlaybookParseError(str(e), "params.seconds")

    return WaitStep(seconds=seconds, **_parse_common(step_data))


def _parse_check_node_step(step_data: dict[str, Any]) -> CheckNodeStep:
    verify = step_data.get("verify")
    if not verify or not isinstance(verify, str):
        raise PlaybookParseError(
            "check_node requires an expected status (e.g. 'online')", "verify"
        )

    node_id = _get_params(step_data).get("node_id")

    return CheckNodeStep(
        verify=verify,
        node_id=str(node_id) if node_id else None,
        **_parse_common(step_data),
    )


def _parse_restart_service_step(step_data: dict[str, Any]) -> RestartServiceStep:
    service = _get_params(step_data).get("service")
    if not service or not isinstance(service, str):
        raise PlaybookParseError(
            "restart_service requires a service name", "params.service"
        )

    return RestartServiceStep(service=service, **_parse_common(step_data))


def _parse_suggest_step(step_data: dict[str, Any]) -> SuggestStep:
    message = step_data.get("message")
    if not message or not isinstance(message, str):
        raise PlaybookParseError("suggest requires a message", "message")

    return SuggestStep(message=message, **_parse_common(step_data))


_SIMPLE_STEPS = {
    StepAction.RESCAN_NODES: RescanNodesStep,
    StepAction.GET_STATUS: GetStatusStep,
    StepAction.STOP_PLAYBACK: StopPlaybackStep,
}


def parse_step(step_data: dict[str, Any]) -> PlaybookStep:
    """
    Parse a single step definition.

    Args:
        step_data: Step configuration dictionary

    Returns:
        Appropriate step object based on action

    Raises:
        PlaybookParseError: If step is invalid
    """
    if not isinstance(step_data, dict):
        raise PlaybookParseError("Step must be a dictionary")

    action_str = step_data.get("action")
    if not action_str:
        raise PlaybookParseError("Step action is required", "action")

    if not StepAction.is_valid(str(action_str)):
        valid_actions = [a.value for a in StepAction]
        raise PlaybookParseError(
            f"Invalid step action: {action_str}. Must be one of {valid_actions}",
            "action",
        )

    action = StepAction(str(action_str).lower())

    if action == StepAction.WAIT:
        return _parse_wait_step(step_data)
    elif action == StepAction.CHECK_NODE:
        return _parse_check_node_step(step_data)
    elif action == StepAction.RESTART_SERVICE:
        return _parse_restart_service_step(step_data)
    elif action == StepAction.SUGGEST:
        return _parse_suggest_step(step_data)
    else:
        _get_params(step_data)
        return _SIMPLE_STEPS[action](**_parse_common(step_data))


def parse_playbook_dict(
    data: dict[str, Any], playbook_id: Optional[str] = None
) -> Playbook:
    """
    Parse a playbook definition dictionary.

    Args:
        data: Playbook definition (id, trigger, risk, steps)
        playbook_id: Registry key the definition is stored under. When
            given, the definition's own `id` (if any) must match it.

    Returns:
        Playbook object

    Raises:
        PlaybookParseError: If the definition is invalid
    """
    if not isinstance(data, dict):
        raise PlaybookParseError("Playbook must be a dictionary/object")

    pb_id = data.get("id", playbook_id)
    if not pb_id:
        raise PlaybookParseError("Playbook id is required", "id")
    if playbook_id is not None and str(pb_id) != str(playbook_id):
        raise PlaybookParseError(
            f"Playbook id '{pb_id}' does not match its key '{playbook_id}'", "id"
        )

    trigger = data.get("trigger")
    if not trigger:
        raise PlaybookParseError("Playbook trigger is required", "trigger")

    risk_str = data.get("risk", RiskLevel.LOW.value)
    try:
        risk = RiskLevel(str(risk_str).lower())
    except ValueError:
        valid_risks = [r.value for r in RiskLevel]
        raise PlaybookParseError(
            f"Invalid risk level: {risk_str}. Must be one of {valid_risks}", "risk"
        )

    steps_data = data.get("steps", [])
    if not steps_data:
        raise PlaybookParseError("Playbook must have at least one step", "steps")

    if not isinstance(steps_data, list):
        raise PlaybookParseError("Steps must be a list", "steps")

    steps: list[PlaybookStep] = []
    for i, step_data in enumerate(steps_data):
        try:
            steps.append(parse_step(step_data))
        except PlaybookParseError as e:
            # Add step index to error for context
            raise PlaybookParseError(f"Step {i + 1}: {e.message}", e.field)

    reserved_keys = {"id", "trigger", "risk", "steps", "description"}
    metadata = {k: v for k, v in data.items() if k not in reserved_keys}

    return Playbook(
        id=str(pb_id),
        trigger=str(trigger),
        steps=tuple(steps),
        risk=risk,
        description=str(data.get("description", "")),
        metadata=metadata,
    )


def parse_playbook_yaml(yaml_content: str) -> list[Playbook]:
    """
    Parse a YAML document holding one or more playbook definitions.

    Returns:
        Playbooks in document order

    Raises:
        PlaybookParseError: If YAML is invalid or a definition is invalid

    Example YAML format:
        playbooks:
          dmx_output_frozen:
            trigger: output_stale
            risk: low
            steps:
              - action: get_status
                desc: Check backend state
              - action: wait
                params: {seconds: 3}
              - action: suggest
                message: Output still frozen. Power-cycle the node?

    A top-level list of definitions (each with an `id`) is accepted too.
    """
    if not yaml_content or not yaml_content.strip():
        raise PlaybookParseError("Playbook YAML content cannot be empty")

    try:
        data = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise PlaybookParseError(f"Invalid YAML syntax: {e}")

    if isinstance(data, dict) and "playbooks" in data:
        data = data["playbooks"]

    playbooks: list[Playbook] = []
    if isinstance(data, dict):
        for key, definition in data.items():
            try:
                playbooks.append(parse_playbook_dict(definition, str(key)))
            except PlaybookParseError as e:
                raise PlaybookParseError(f"Playbook '{key}': {e.message}", e.field)
    elif isinstance(data, list):
        for i, definition in enumerate(data):
            try:
                playbooks.append(parse_playbook_dict(definition))
            except PlaybookParseError as e:
                raise PlaybookParseError(f"Playbook {i + 1}: {e.message}", e.field)
    else:
        raise PlaybookParseError("Playbooks must be a YAML mapping or list")

    if not playbooks:
        raise PlaybookParseError("No playbooks defined", "playbooks")

    return playbooks


def validate_playbook_yaml(yaml_content: str) -> list[str]:
    """
    Validate a playbook YAML document without returning the parsed result.

    Returns:
        List of error messages (empty if valid)
    """
    errors: list[str] = []

    try:
        parse_playbook_yaml(yaml_content)
    except PlaybookParseError as e:
        errors.append(str(e))

    return errors


def is_valid_playbook_yaml(yaml_content: str) -> bool:
    """Check if a playbook YAML document is valid."""
    return len(validate_playbook_yaml(yaml_content)) == 0
