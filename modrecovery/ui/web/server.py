"""
HTTP API server — Flask app factory.

Creates the Flask application exposing RecoveryOperations under /api.
The engine itself runs on an EngineRunner loop; views are synchronous.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask

from modrecovery.core.models.config import EngineConfig
from modrecovery.ui.web.runner import EngineRunner

logger = logging.getLogger(__name__)


def create_app(
    config: EngineConfig | None = None,
    mock_mode: bool = False,
    engine: Any = None,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Engine configuration, used when ``engine`` is not given.
        mock_mode: Whether to build the engine with mock collaborators.
        engine: A pre-built Engine (the CLI and tests pass one in).

    Returns:
        Configured Flask application.
    """
    if engine is None:
        from modrecovery.core.engine.facade import build_engine

        engine = build_engine(config, mock=mock_mode)

    app = Flask(__name__)
    app.config["ENGINE"] = engine
    app.config["ENGINE_RUNNER"] = EngineRunner()
    app.config["MOCK_MODE"] = mock_mode or engine.adapters.mock_mode
    app.json.sort_keys = False

    # Register blueprints
    from modrecovery.ui.web.helpers import register_error_handlers
    from modrecovery.ui.web.routes_api import api_bp
    from modrecovery.ui.web.routes_modules import modules_bp
    from modrecovery.ui.web.routes_monitoring import monitoring_bp
    from modrecovery.ui.web.routes_phases import phases_bp
    from modrecovery.ui.web.routes_sessions import sessions_bp
    from modrecovery.ui.web.routes_workspace import workspace_bp

    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(workspace_bp, url_prefix="/api/workspace")
    app.register_blueprint(sessions_bp, url_prefix="/api/sessions")
    app.register_blueprint(modules_bp, url_prefix="/api/modules")
    app.register_blueprint(phases_bp, url_prefix="/api/phases")
    app.register_blueprint(monitoring_bp, url_prefix="/api/monitoring")
    register_error_handlers(app)

    logger.info("HTTP API app created (root=%s)", engine.config.workspace.root)
    return app


def run_server(
    app: Flask,
    host: str = "127.0.0.1",
    port: int = 8000,
    debug: bool = False,
) -> None:
    """Run the Flask development server."""
    logger.info("Starting HTTP API on %s:%d", host, port)
    runner = app.config["ENGINE_RUNNER"]
    try:
        app.run(host=host, port=port, debug=debug, use_reloader=False)
    finally:
        if runner.running:
            runner.run(app.config["ENGINE"].operations.stop_monitoring())
        runner.stop()
