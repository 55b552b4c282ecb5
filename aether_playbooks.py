"""
AETHER Playbooks - Remediation Playbook Service

A Flask-based service that runs AETHER's remediation playbooks (node
recovery, stuck playback, service restart) on request from the diagnostics
UI and the CLI.
"""

import logging
from flask import Flask

import Aether.Core.routes
from Aether.Core.logging_config import configure_logging
from Aether.Core.telemetry import init_telemetry, shutdown_telemetry
from config import get_config

logger = logging.getLogger(__name__)


def create_app(runner=None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        runner: PlaybookRunner to serve (default: the global runner)
    """
    app = Flask(__name__)

    config = get_config()

    # Validate configuration (non-strict for web server)
    errors = config.validate(strict=False)
    if errors:
        for error in errors:
            logger.warning(f"Configuration warning: {error}")

    init_telemetry(app)

    Aether.Core.routes.exposeRoutes(app, runner=runner)

    logger.info("AETHER playbook server initialized")
    logger.info(f"AETHER Core: {config.core.base_url}")

    return app


if __name__ == "__main__":
    configure_logging()

    config = get_config()
    config.validate_or_exit()
    config.log_config()

    app = create_app()

    logger.info(f"Starting AETHER playbooks on port {config.app.port}")
    try:
        app.run(host="0.0.0.0", port=config.app.port, debug=config.app.debug)
    finally:
        shutdown_telemetry()
