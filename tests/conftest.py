"""Pytest configuration and shared fixtures."""
import os
import sys
import pytest
from unittest.mock import MagicMock, patch

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tests.fakes import RecordingHandlers, RecordingSleeper  # noqa: E402


@pytest.fixture(autouse=True)
def mock_env_vars():
    """Set up environment variables for testing.

    This fixture is autouse=True so it runs for all tests automatically.
    Cached configuration, registry and runner are dropped on both sides of
    every test so each one sees its own environment.
    """
    env_vars = {
        "AETHER_CORE_URL": "http://core.test:8891",
        "AETHER_CORE_TIMEOUT": "5",
        "AETHER_DEFAULT_WAIT_SECONDS": "5",
        "AETHER_RESTARTABLE_SERVICES": "aether-core",
        "AETHER_SERVICE_RESTART_TIMEOUT": "30",
        "AETHER_PLAYBOOKS_URL": "http://localhost:8892",
        "PORT": "8892",
        "OTEL_ENABLED": "false",
    }
    with patch.dict(os.environ, env_vars):
        os.environ.pop("AETHER_PLAYBOOKS_FILE", None)
        _reset_globals()
        yield env_vars
        _reset_globals()


def _reset_globals():
    import config
    from Aether.Core import playbook_registry, playbook_runner

    config.reload_config()
    playbook_registry.reset_registry()
    playbook_runner.reset_runner()


@pytest.fixture
def fake_sleep():
    """Recording sleeper for wait steps."""
    return RecordingSleeper()


@pytest.fixture
def handlers():
    """Recording handlers for every handler-backed action."""
    return RecordingHandlers(returns={"check_node": "online"})


@pytest.fixture
def registry():
    """Registry holding the built-in playbooks."""
    from Aether.Core.playbook_registry import build_default_registry

    return build_default_registry()


@pytest.fixture
def runner(registry, handlers, fake_sleep):
    """PlaybookRunner wired to recording collaborators."""
    from Aether.Core.playbook_runner import PlaybookRunner

    return PlaybookRunner(
        registry=registry,
        handlers=handlers.as_mapping(),
        sleep=fake_sleep,
        default_wait_seconds=5,
    )


@pytest.fixture
def app(runner):
    """Create Flask test application."""
    from aether_playbooks import create_app

    app = create_app(runner=runner)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def mock_http_response():
    """Factory for requests.Response-like mocks."""
    def _make(status_code=200, json_body=None, text=""):
        response = MagicMock()
        response.status_code = status_code
        if json_body is None:
            response.content = text.encode()
            response.text = text
            response.json.side_effect = ValueError("No JSON")
        else:
            response.content = b"{...}"
            response.text = str(json_body)
            response.json.return_value = json_body
        return response
    return _make
