"""Unit tests for the wait step executor."""
import asyncio
from unittest.mock import patch

from tests.fakes import RecordingSleeper


class TestResolveWaitSeconds:
    """Tests for resolve_wait_seconds."""

    def test_step_duration_wins(self):
        """Test a step's own duration is used."""
        from Aether.Core.playbook.executors.wait import resolve_wait_seconds
        from Aether.Core.playbook_parser import WaitStep

        assert resolve_wait_seconds(WaitStep(seconds=10), 5) == 10

    def test_default_used_when_unset(self):
        """Test steps without a duration take the default."""
        from Aether.Core.playbook.executors.wait import resolve_wait_seconds
        from Aether.Core.playbook_parser import WaitStep

        assert resolve_wait_seconds(WaitStep(), 7) == 7

    def test_builtin_default(self):
        """Test the built-in default is five seconds."""
        from Aether.Core.playbook.executors.wait import resolve_wait_seconds
        from Aether.Core.playbook_parser import WaitStep

        assert resolve_wait_seconds(WaitStep()) == 5

    def test_zero_uses_default(self):
        """Test a zero duration is treated as unset."""
        from Aether.Core.playbook.executors.wait import resolve_wait_seconds
        from Aether.Core.playbook_parser import WaitStep

        assert resolve_wait_seconds(WaitStep(seconds=0), 5) == 5


class TestExecuteWaitStep:
    """Tests for execute_wait_step."""

    def test_sleeps_for_duration(self):
        """Test the injected sleeper is awaited with the duration."""
        from Aether.Core.playbook.executors.wait import execute_wait_step
        from Aether.Core.playbook_parser import WaitStep

        sleeper = RecordingSleeper()

        waited = asyncio.run(execute_wait_step(WaitStep(seconds=3), sleep=sleeper))

        assert waited == 3
        assert sleeper.calls == [3]

    def test_uses_asyncio_sleep_by_default(self):
        """Test asyncio.sleep is the default sleeper."""
        from Aether.Core.playbook.executors.wait import execute_wait_step
        from Aether.Core.playbook_parser import WaitStep

        sleeper = RecordingSleeper()
        with patch("Aether.Core.playbook.executors.wait.asyncio.sleep", sleeper):
            asyncio.run(execute_wait_step(WaitStep(), default_seconds=2))

        assert sleeper.calls == [2]

    def test_zero_duration_sleeps_default(self):
        """Test a step with seconds: 0 waits the default duration."""
        from Aether.Core.playbook.executors.wait import execute_wait_step
        from Aether.Core.playbook_parser import parse_step

        sleeper = RecordingSleeper()
        step = parse_step({"action": "wait", "params": {"seconds": 0}})

        waited = asyncio.run(execute_wait_step(step, sleep=sleeper, default_seconds=5))

        assert waited == 5
        assert sleeper.calls == [5]
