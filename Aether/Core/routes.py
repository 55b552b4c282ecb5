"""Flask routes for the AETHER playbook API."""
import asyncio
import json
import logging

from cerberus import Validator
from flask import Response, request

import Aether.Core.metrics as metrics
import Aether.Core.playbook_runner as playbook_runner
import Aether.Helpers.logSettings as logLevel
from Aether.Core.playbook.models import RunStatus

# Log Setup
logger = logging.getLogger(__name__)
logger.setLevel(logLevel.logSetup())


def _reject_bool(field, value, error):
    # bool is an int subclass, so 'integer' alone lets true/false through
    if isinstance(value, bool):
        error(field, 'must be an integer, not a boolean')


RUN_REQUEST_SCHEMA = {
    'confirmed': {'type': 'boolean', 'required': False},
    'resume_index': {'type': 'integer', 'min': 0, 'nullable': True, 'required': False,
                     'check_with': _reject_bool},
    'variables': {'type': 'dict', 'required': False},
}

# HTTP status per run outcome
RUN_STATUS_CODES = {
    RunStatus.COMPLETED: 200,
    RunStatus.SUGGESTION: 200,
    RunStatus.NEEDS_CONFIRM: 202,
    RunStatus.UNKNOWN_PLAYBOOK: 404,
    RunStatus.STEP_FAILED: 502,
}

RUN_MESSAGES = {
    RunStatus.COMPLETED: "Playbook completed.",
    RunStatus.SUGGESTION: "Playbook stopped with a suggestion.",
    RunStatus.NEEDS_CONFIRM: "Confirmation required to continue.",
    RunStatus.UNKNOWN_PLAYBOOK: "Unknown playbook.",
    RunStatus.STEP_FAILED: "Playbook step failed.",
}


def exposeRoutes(app, runner=None):
    """
    Register all routes with the Flask app.

    Args:
        app: Flask application
        runner: PlaybookRunner to serve (default: the global runner)
    """

    def _runner():
        return runner or playbook_runner.get_runner()

    @app.route('/health')
    def health_check():
        """Liveness plus the number of registered playbooks."""
        count = len(_runner().registry)
        metrics.set_playbooks_registered(count)
        return json.dumps({
            "status": "healthy",
            "playbooks": count
        }), 200

    @app.route('/metrics')
    def prometheus_metrics():
        """Prometheus metrics endpoint."""
        return Response(
            metrics.get_metrics(),
            mimetype=metrics.get_metrics_content_type()
        )

    @app.route('/api/playbooks', methods=['GET'])
    @metrics.track_request_metrics
    def playbooks():
        registry = _runner().registry
        trigger = request.args.get('trigger')
        if trigger:
            selected = registry.find_by_trigger(trigger)
        else:
            selected = list(registry)

        return json.dumps({
            "success": True,
            "message": "",
            "results": [pb.to_dict() for pb in selected]
        }), 200

    @app.route('/api/playbooks/<playbook_id>', methods=['GET'])
    @metrics.track_request_metrics
    def playbook(playbook_id):
        pb = _runner().registry.lookup(playbook_id)
        if pb is None:
            logger.log(level=30, msg=f"Playbook {playbook_id} not found")
            return json.dumps({
                "success": False,
                "message": f"Playbook {playbook_id} not found.",
                "results": ""
            }), 404

        return json.dumps({
            "success": True,
            "message": "",
            "results": pb.to_dict()
        }), 200

    @app.route('/api/playbooks/<playbook_id>/run', methods=['POST'])
    @metrics.track_request_metrics
    def run_playbook(playbook_id):
        jData = {}
        if request.data:
            try:
                jData = json.loads(request.data)
            except (json.JSONDecodeError, ValueError):
                return json.dumps({
                    "success": False,
                    "message": "Request body must be JSON.",
                    "results": ""
                }), 400

        if not isinstance(jData, dict) or not validateRequestData(RUN_REQUEST_SCHEMA, jData):
            logger.log(level=30, msg=f"Invalid run request for {playbook_id}: {jData}")
            return json.dumps({
                "success": False,
                "message": "Invalid request. Accepted fields: confirmed (bool), "
                           "resume_index (int >= 0), variables (object).",
                "results": ""
            }), 400

        result = asyncio.run(_runner().run(playbook_id, jData))

        logger.log(
            level=10,
            msg=f"Run of {playbook_id} via API: {result.status.value}"
        )

        return json.dumps({
            "success": result.success,
            "message": RUN_MESSAGES[result.status],
            "results": result.to_dict()
        }), RUN_STATUS_CODES[result.status]


def validateRequestData(schema, jData):
    """Validate request data against a schema."""
    try:
        v = Validator(schema)
        result = v.validate(jData)
        if not result:
            logger.log(level=10, msg=f"Validation failed: {v.errors}")
    except Exception as e:
        logger.log(level=40, msg=f"Validation Error: {str(e)}")
        return False
    return result
