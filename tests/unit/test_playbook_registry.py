"""Unit tests for playbook_registry module."""
import os
from unittest.mock import patch

import pytest


PLAYBOOKS_YAML = """
playbooks:
  dmx_output_frozen:
    trigger: output_stale
    steps:
      - action: get_status
      - action: suggest
        message: Output still frozen. Power-cycle the node?
  node_recheck:
    trigger: node_offline
    steps:
      - action: check_node
        verify: online
"""


class TestDefaultPlaybooks:
    """Tests for the built-in playbook set."""

    def test_default_ids(self, registry):
        """Test the three built-ins are registered in order."""
        assert registry.ids() == ["node_recovery", "playback_stuck", "service_restart"]

    def test_node_recovery_definition(self, registry):
        """Test node_recovery's trigger, risk and steps."""
        playbook = registry.lookup("node_recovery")

        assert playbook.trigger == "node_offline"
        assert playbook.risk.value == "low"
        assert [s.action.value for s in playbook.steps] == [
            "wait", "rescan_nodes", "check_node", "suggest"
        ]
        assert playbook.steps[0].seconds == 10
        assert playbook.steps[2].verify == "online"
        assert playbook.steps[3].confirm is True

    def test_playback_stuck_definition(self, registry):
        """Test playback_stuck has no confirm-gated steps."""
        playbook = registry.lookup("playback_stuck")

        assert playbook.trigger == "playback_mismatch"
        assert not any(step.confirm for step in playbook.steps)
        assert playbook.steps[-1].message == "Playback was stuck. Cleared."

    def test_service_restart_definition(self, registry):
        """Test service_restart is high risk and fully gated."""
        playbook = registry.lookup("service_restart")

        assert playbook.trigger == "service_down"
        assert playbook.risk.value == "high"
        assert all(step.confirm for step in playbook.steps)
        assert playbook.steps[1].service == "aether-core"

    def test_definitions_round_trip_through_to_dict(self, registry):
        """Test to_dict reproduces the built-in definitions."""
        from Aether.Core.playbook_registry import DEFAULT_PLAYBOOK_DEFINITIONS

        data = registry.to_dict()

        assert data["service_restart"] == DEFAULT_PLAYBOOK_DEFINITIONS["service_restart"]
        assert data["playback_stuck"] == DEFAULT_PLAYBOOK_DEFINITIONS["playback_stuck"]


class TestPlaybookRegistry:
    """Tests for PlaybookRegistry."""

    def test_lookup_unknown_returns_none(self, registry):
        """Test unknown ids are not found."""
        assert registry.lookup("nope") is None
        assert registry.get("nope") is None

    def test_contains_and_len(self, registry):
        """Test membership and size."""
        assert "node_recovery" in registry
        assert "nope" not in registry
        assert len(registry) == 3

    def test_iterates_playbooks(self, registry):
        """Test iteration yields Playbook objects in order."""
        assert [pb.id for pb in registry] == registry.ids()

    def test_find_by_trigger(self, registry):
        """Test trigger lookup."""
        matches = registry.find_by_trigger("service_down")

        assert [pb.id for pb in matches] == ["service_restart"]
        assert registry.find_by_trigger("unknown_trigger") == []

    def test_find_by_trigger_keeps_declaration_order(self):
        """Test several playbooks for one trigger are listed in order."""
        from Aether.Core.playbook_parser import parse_playbook_yaml
        from Aether.Core.playbook_registry import PlaybookRegistry

        registry = PlaybookRegistry(parse_playbook_yaml("""
b_second:
  trigger: node_offline
  steps: [{action: rescan_nodes}]
a_first:
  trigger: node_offline
  steps: [{action: get_status}]
"""))

        assert [pb.id for pb in registry.find_by_trigger("node_offline")] == [
            "b_second", "a_first"
        ]

    def test_duplicate_ids_rejected(self, registry):
        """Test two playbooks cannot share an id."""
        from Aether.Core.playbook_parser import PlaybookParseError
        from Aether.Core.playbook_registry import PlaybookRegistry

        playbook = registry.lookup("node_recovery")

        with pytest.raises(PlaybookParseError, match="Duplicate playbook id"):
            PlaybookRegistry([playbook, playbook])

    def test_registry_is_read_only(self, registry):
        """Test the underlying mapping cannot be modified."""
        with pytest.raises(TypeError):
            registry._playbooks["new"] = registry.lookup("node_recovery")

    def test_from_definitions_invalid(self):
        """Test invalid definitions fail at construction."""
        from Aether.Core.playbook_parser import PlaybookParseError
        from Aether.Core.playbook_registry import PlaybookRegistry

        with pytest.raises(PlaybookParseError):
            PlaybookRegistry.from_definitions({"bad": {"trigger": "x", "steps": []}})

    def test_empty_registry(self):
        """Test a registry can be empty."""
        from Aether.Core.playbook_registry import PlaybookRegistry

        registry = PlaybookRegistry()

        assert len(registry) == 0
        assert registry.lookup("node_recovery") is None


class TestLoadRegistryFromYaml:
    """Tests for load_registry_from_yaml and get_registry."""

    def test_load_from_file(self, tmp_path):
        """Test a YAML file becomes a registry."""
        from Aether.Core.playbook_registry import load_registry_from_yaml

        path = tmp_path / "playbooks.yaml"
        path.write_text(PLAYBOOKS_YAML)

        registry = load_registry_from_yaml(str(path))

        assert registry.ids() == ["dmx_output_frozen", "node_recheck"]

    def test_load_missing_file(self, tmp_path):
        """Test a missing file raises OSError."""
        from Aether.Core.playbook_registry import load_registry_from_yaml

        with pytest.raises(OSError):
            load_registry_from_yaml(str(tmp_path / "missing.yaml"))

    def test_get_registry_defaults_to_builtins(self):
        """Test the process-wide registry holds the built-ins."""
        from Aether.Core.playbook_registry import get_registry

        assert get_registry().ids() == [
            "node_recovery", "playback_stuck", "service_restart"
        ]

    def test_get_registry_is_cached(self):
        """Test the process-wide registry is built once."""
        from Aether.Core.playbook_registry import get_registry

        assert get_registry() is get_registry()

    def test_get_registry_uses_playbooks_file(self, tmp_path):
        """Test AETHER_PLAYBOOKS_FILE replaces the built-ins."""
        import config
        from Aether.Core.playbook_registry import get_registry, reset_registry

        path = tmp_path / "playbooks.yaml"
        path.write_text(PLAYBOOKS_YAML)

        with patch.dict(os.environ, {"AETHER_PLAYBOOKS_FILE": str(path)}):
            config.reload_config()
            reset_registry()
            registry = get_registry()

        assert "dmx_output_frozen" in registry
        assert "node_recovery" not in registry
