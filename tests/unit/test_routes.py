"""Unit tests for Flask routes."""
import json


def post_run(client, playbook_id, body=None, raw=None):
    data = raw if raw is not None else (json.dumps(body) if body is not None else None)
    return client.post(
        f"/api/playbooks/{playbook_id}/run",
        data=data,
        content_type="application/json",
    )


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client):
        """Test health reports the playbook count."""
        response = client.get("/health")

        assert response.status_code == 200
        assert json.loads(response.data) == {"status": "healthy", "playbooks": 3}


class TestMetricsEndpoint:
    """Tests for the metrics endpoint."""

    def test_metrics(self, client):
        """Test metrics are served in OpenMetrics format."""
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.content_type.startswith("application/openmetrics-text")
        assert b"aether_playbook_runs_total" in response.data


class TestListPlaybooks:
    """Tests for GET /api/playbooks."""

    def test_lists_all(self, client):
        """Test every registered playbook is listed."""
        response = client.get("/api/playbooks")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["success"] is True
        assert [pb["id"] for pb in data["results"]] == [
            "node_recovery", "playback_stuck", "service_restart"
        ]

    def test_filter_by_trigger(self, client):
        """Test the trigger query parameter filters."""
        response = client.get("/api/playbooks?trigger=playback_mismatch")

        data = json.loads(response.data)
        assert [pb["id"] for pb in data["results"]] == ["playback_stuck"]

    def test_filter_without_matches(self, client):
        """Test an unknown trigger lists nothing."""
        response = client.get("/api/playbooks?trigger=fog_machine_empty")

        assert response.status_code == 200
        assert json.loads(response.data)["results"] == []


class TestGetPlaybook:
    """Tests for GET /api/playbooks/<id>."""

    def test_found(self, client):
        """Test a playbook definition is returned."""
        response = client.get("/api/playbooks/service_restart")

        assert response.status_code == 200
        data = json.loads(response.data)["results"]
        assert data["risk"] == "high"
        assert data["steps"][1]["params"] == {"service": "aether-core"}

    def test_not_found(self, client):
        """Test unknown ids return 404."""
        response = client.get("/api/playbooks/nope")

        assert response.status_code == 404
        data = json.loads(response.data)
        assert data["success"] is False
        assert data["message"] == "Playbook nope not found."


class TestRunPlaybook:
    """Tests for POST /api/playbooks/<id>/run."""

    def test_needs_confirm_returns_202(self, client, handlers):
        """Test a confirm gate pauses the run."""
        response = post_run(client, "node_recovery", {})

        assert response.status_code == 202
        data = json.loads(response.data)
        assert data["success"] is False
        assert data["message"] == "Confirmation required to continue."
        assert data["results"]["needsConfirm"] is True
        assert data["results"]["resumeIndex"] == 3
        assert [r["step"] for r in data["results"]["results"]] == [
            "wait", "rescan_nodes", "check_node"
        ]
        assert data["results"]["results"][2]["observed"] == "online"

    def test_empty_body_runs_unconfirmed(self, client, handlers):
        """Test a run without a body uses the defaults."""
        response = post_run(client, "playback_stuck")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["results"]["suggestion"] == "Playback was stuck. Cleared."
        assert handlers.actions() == ["get_status", "stop_playback"]

    def test_confirmed_resume_completes(self, client, handlers):
        """Test a confirmed resume runs the gated step."""
        response = post_run(client, "service_restart", {"confirmed": True, "resume_index": 1})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["message"] == "Playbook completed."
        assert data["results"] == {
            "success": True,
            "results": [{"step": "restart_service", "done": True}],
        }

    def test_variables_reach_handlers(self, client, handlers):
        """Test request variables are passed in the context."""
        post_run(client, "node_recovery", {"variables": {"node_id": "node-4"}})

        _, _, context = handlers.calls[0]
        assert context.variables == {"node_id": "node-4"}

    def test_unknown_playbook_returns_404(self, client):
        """Test unknown ids are reported."""
        response = post_run(client, "nope", {})

        assert response.status_code == 404
        data = json.loads(response.data)
        assert data["results"] == {"success": False, "error": "Unknown playbook"}

    def test_step_failure_returns_502(self, client, handlers):
        """Test handler failures are reported with the failed step."""
        handlers.errors["stop_playback"] = RuntimeError("Core unreachable")

        response = post_run(client, "playback_stuck", {})

        assert response.status_code == 502
        data = json.loads(response.data)
        assert data["message"] == "Playbook step failed."
        assert data["results"]["failedStep"] == "stop_playback"
        assert data["results"]["error"] == "Core unreachable"
        assert data["results"]["resumeIndex"] == 1

    def test_resume_index_out_of_range(self, client, handlers):
        """Test a resume index past the end fails without running steps."""
        response = post_run(client, "service_restart", {"confirmed": True, "resume_index": 9})

        assert response.status_code == 502
        assert json.loads(response.data)["results"]["error"] == "Invalid resume index: 9"
        assert handlers.calls == []

    def test_invalid_json(self, client, handlers):
        """Test unparseable bodies are rejected."""
        response = post_run(client, "node_recovery", raw="{not json")

        assert response.status_code == 400
        assert json.loads(response.data)["message"] == "Request body must be JSON."
        assert handlers.calls == []

    def test_schema_violations(self, client, handlers):
        """Test bodies outside the schema are rejected."""
        bodies = [
            {"confirmed": "yes"},
            {"resume_index": -1},
            {"resume_index": "2"},
            {"resume_index": True},
            {"variables": ["node-4"]},
            {"node_id": "node-4"},
        ]

        for body in bodies:
            response = post_run(client, "node_recovery", body)
            assert response.status_code == 400, body

        assert handlers.calls == []

    def test_boolean_resume_index_rejected(self, client, handlers):
        """Test resume_index: true is a bad request, not a failed step."""
        response = post_run(client, "service_restart", {"confirmed": True, "resume_index": True})

        assert response.status_code == 400
        assert json.loads(response.data)["success"] is False
        assert handlers.calls == []

    def test_non_object_body(self, client):
        """Test a JSON array body is rejected."""
        response = post_run(client, "node_recovery", [1, 2])

        assert response.status_code == 400


class TestValidateRequestData:
    """Tests for validateRequestData."""

    def test_valid(self):
        """Test a full body validates."""
        from Aether.Core.routes import RUN_REQUEST_SCHEMA, validateRequestData

        assert validateRequestData(
            RUN_REQUEST_SCHEMA,
            {"confirmed": True, "resume_index": None, "variables": {"node_id": "a"}},
        ) is True

    def test_bad_schema(self):
        """Test schema errors are reported as invalid."""
        from Aether.Core.routes import validateRequestData

        assert validateRequestData({"confirmed": {"type": "nonsense"}}, {}) is False

    def test_boolean_resume_index_invalid(self):
        """Test a boolean does not pass as an integer resume index."""
        from Aether.Core.routes import RUN_REQUEST_SCHEMA, validateRequestData

        assert validateRequestData(RUN_REQUEST_SCHEMA, {"resume_index": False}) is False
        assert validateRequestData(RUN_REQUEST_SCHEMA, {"resume_index": 0}) is True


class TestCreateApp:
    """Tests for the application factory."""

    def test_initializes_telemetry(self, runner):
        """Test the app is handed to init_telemetry."""
        from unittest.mock import patch

        from aether_playbooks import create_app

        with patch("aether_playbooks.init_telemetry") as mock_init:
            app = create_app(runner=runner)

        mock_init.assert_called_once_with(app)

    def test_runs_with_telemetry_disabled(self, runner):
        """Test OTEL_ENABLED=false leaves tracing off."""
        from aether_playbooks import create_app
        from Aether.Core.telemetry import is_telemetry_enabled

        create_app(runner=runner)

        assert is_telemetry_enabled() is False
