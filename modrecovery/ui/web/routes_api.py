"""
Engine routes — engine component health and in-process metrics.
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from modrecovery.ui.web.helpers import call, operations, to_json

api_bp = Blueprint("api", __name__)


@api_bp.route("/health")
def api_health():  # type: ignore[no-untyped-def]
    """Engine health: circuit breakers, adapters, sessions."""
    return to_json(call(operations().engine_health()))


@api_bp.route("/metrics")
def api_metrics():  # type: ignore[no-untyped-def]
    return jsonify(operations().metrics())
