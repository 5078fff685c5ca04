"""
Workspace routes — health, status, and whole-workspace build/validate/reset.
"""

from __future__ import annotations

from flask import Blueprint, request

from modrecovery.ui.web.helpers import (
    call,
    confirmed,
    json_body,
    module_ids_from,
    operations,
    to_json,
)

workspace_bp = Blueprint("workspace", __name__)


@workspace_bp.route("/health", methods=["GET", "POST"])
def workspace_health():  # type: ignore[no-untyped-def]
    """Workspace health, optionally restricted to some modules."""
    data = json_body() if request.method == "POST" else {}
    return to_json(call(operations().get_workspace_health(module_ids_from(data))))


@workspace_bp.route("/status")
def workspace_status():  # type: ignore[no-untyped-def]
    return to_json(call(operations().get_workspace_status()))


@workspace_bp.route("/build", methods=["POST"])
def workspace_build():  # type: ignore[no-untyped-def]
    """Build modules tier by tier."""
    data = json_body()
    result = call(operations().build_workspace(
        module_ids_from(data),
        parallel=data.get("parallel", True) is not False,
        force=data.get("force") is True,
    ))
    return to_json(result)


@workspace_bp.route("/validate", methods=["POST"])
def workspace_validate():  # type: ignore[no-untyped-def]
    data = json_body()
    return to_json(call(operations().validate_workspace(module_ids_from(data))))


@workspace_bp.route("/reset", methods=["POST"])
def workspace_reset():  # type: ignore[no-untyped-def]
    """Reset recovery state of modules. Requires ``confirmation: true``."""
    data = json_body()
    result = call(operations().reset_workspace(
        module_ids_from(data), confirmation=confirmed(data),
    ))
    return to_json(result)
