"""
Monitoring routes — the periodic health monitor and its alerts.
"""

from __future__ import annotations

from flask import Blueprint

from modrecovery.ui.web.helpers import call, operations, to_json

monitoring_bp = Blueprint("monitoring", __name__)


@monitoring_bp.route("")
def monitoring_status():  # type: ignore[no-untyped-def]
    """Loop state, last seen module scores, and recent alerts."""
    return to_json(call(operations().monitoring_status()))


@monitoring_bp.route("/check", methods=["POST"])
def monitoring_check():  # type: ignore[no-untyped-def]
    """Run one monitoring pass now and return its report."""
    return to_json(call(operations().run_health_check()))


@monitoring_bp.route("/start", methods=["POST"])
def monitoring_start():  # type: ignore[no-untyped-def]
    return to_json(call(operations().start_monitoring()))


@monitoring_bp.route("/stop", methods=["POST"])
def monitoring_stop():  # type: ignore[no-untyped-def]
    return to_json(call(operations().stop_monitoring()))


@monitoring_bp.route("/modules/<module_id>")
def monitored_module(module_id: str):  # type: ignore[no-untyped-def]
    """Last check the monitor saw for a module; null before the first pass."""
    return to_json({
        "module_id": module_id,
        "last_check": call(operations().get_monitored_module(module_id)),
    })
