"""Playbook registry for AETHER.

The registry is the read-only set of playbooks the runner can execute,
keyed by playbook id. It is built once at startup and handed to the runner;
nothing mutates it afterwards.

Playbooks are selected by the caller (diagnostics, alerting) through their
trigger name. `find_by_trigger` lists every playbook declared for a trigger
in declaration order; choosing between several is the caller's call.

Usage:
    from Aether.Core.playbook_registry import get_registry

    registry = get_registry()
    playbook = registry.lookup("node_recovery")
    candidates = registry.find_by_trigger("node_offline")
"""

import logging
from collections.abc import Iterable, Iterator
from types import MappingProxyType
from typing import Any, Optional

import Aether.Helpers.logSettings as logLevel
from config import get_config
from Aether.Core.playbook_parser import (
    Playbook,
    PlaybookParseError,
    parse_playbook_dict,
    parse_playbook_yaml,
)

# Log Setup
logger = logging.getLogger(__name__)
logger.setLevel(logLevel.logSetup())


# Built-in remediation playbooks
DEFAULT_PLAYBOOK_DEFINITIONS: dict[str, dict[str, Any]] = {
    "node_recovery": {
        "id": "node_recovery",
        "trigger": "node_offline",
        "risk": "low",
        "steps": [
            {"action": "wait", "params": {"seconds": 10}, "confirm": False,
             "desc": "Wait for auto-reconnect"},
            {"action": "rescan_nodes", "confirm": False, "desc": "Trigger discovery"},
            {"action": "check_node", "verify": "online", "desc": "Verify node status"},
            {"action": "suggest", "message": "Node still offline. Check power/wiring?",
             "confirm": True},
        ],
    },
    "playback_stuck": {
        "id": "playback_stuck",
        "trigger": "playback_mismatch",
        "risk": "low",
        "steps": [
            {"action": "get_status", "confirm": False, "desc": "Check backend state"},
            {"action": "stop_playback", "confirm": False, "desc": "Force stop"},
            {"action": "suggest", "message": "Playback was stuck. Cleared.",
             "confirm": False},
        ],
    },
    "service_restart": {
        "id": "service_restart",
        "trigger": "service_down",
        "risk": "high",
        "steps": [
            {"action": "suggest", "message": "Service appears down. Restart?",
             "confirm": True},
            {"action": "restart_service", "params": {"service": "aether-core"},
             "confirm": True},
        ],
    },
}


class PlaybookRegistry:
    """
    Immutable mapping of playbook id to Playbook.

    Raises PlaybookParseError on construction if two playbooks share an id.
    """

    def __init__(self, playbooks: Iterable[Playbook] = ()):
        entries: dict[str, Playbook] = {}
        for playbook in playbooks:
            if playbook.id in entries:
                raise PlaybookParseError(
                    f"Duplicate playbook id: '{playbook.id}'", "id"
                )
            entries[playbook.id] = playbook
        self._playbooks = MappingProxyType(entries)

    @classmethod
    def from_definitions(
        cls, definitions: dict[str, dict[str, Any]]
    ) -> "PlaybookRegistry":
        """Build a registry from a mapping of id to definition dict."""
        return cls(
            parse_playbook_dict(definition, playbook_id)
            for playbook_id, definition in definitions.items()
        )

    def lookup(self, playbook_id: str) -> Optional[Playbook]:
        """Get a playbook by id, or None if it is not registered."""
        return self._playbooks.get(playbook_id)

    get = lookup

    def find_by_trigger(self, trigger: str) -> list[Playbook]:
        """All playbooks declared for a trigger, in declaration order."""
        return [pb for pb in self._playbooks.values() if pb.trigger == trigger]

    def ids(self) -> list[str]:
        """Registered playbook ids in declaration order."""
        return list(self._playbooks)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation (id -> definition)."""
        return {pb_id: pb.to_dict() for pb_id, pb in self._playbooks.items()}

    def __contains__(self, playbook_id: object) -> bool:
        return playbook_id in self._playbooks

    def __len__(self) -> int:
        return len(self._playbooks)

    def __iter__(self) -> Iterator[Playbook]:
        return iter(self._playbooks.values())


def build_default_registry() -> PlaybookRegistry:
    """Build a registry holding the built-in playbooks."""
    return PlaybookRegistry.from_definitions(DEFAULT_PLAYBOOK_DEFINITIONS)


def load_registry_from_yaml(path: str) -> PlaybookRegistry:
    """
    Build a registry from a YAML playbook file.

    Args:
        path: Path to the YAML file

    Returns:
        PlaybookRegistry with the file's playbooks

    Raises:
        PlaybookParseError: If the file content is invalid
        OSError: If the file cannot be read
    """
    with open(path, encoding="utf-8") as f:
        content = f.read()

    registry = PlaybookRegistry(parse_playbook_yaml(content))

    logger.log(
        level=20,
        msg=f"Loaded {len(registry)} playbooks from {path}: "
            f"{', '.join(registry.ids())}",
    )
    return registry


# Global registry instance
_registry: Optional[PlaybookRegistry] = None


def get_registry() -> PlaybookRegistry:
    """
    Get the process-wide registry.

    Loads AETHER_PLAYBOOKS_FILE when configured, otherwise the built-in
    playbooks.
    """
    global _registry
    if _registry is None:
        playbooks_file = get_config().runner.playbooks_file
        if playbooks_file:
            _registry = load_registry_from_yaml(playbooks_file)
        else:
            _registry = build_default_registry()
    return _registry


def reset_registry() -> None:
    """Drop the cached process-wide registry."""
    global _registry
    _registry = None
