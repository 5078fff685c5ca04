"""
Session routes — create, execute, inspect, and cancel recovery sessions, and read their audit trail.
"""

from __future__ import annotations

from flask import Blueprint

from modrecovery.ui.web.helpers import call, json_body, module_ids_from, operations, to_json

sessions_bp = Blueprint("sessions", __name__)


@sessions_bp.route("", methods=["POST"])
def create_session():  # type: ignore[no-untyped-def]
    """Initialize a recovery session.

    Body: ``{"session_id": "...", "target_modules": [...]}``. Omitting
    ``target_modules`` targets every module.
    """
    data = json_body()
    session = call(operations().initialize_recovery_session(
        data.get("session_id"),
        module_ids_from(data, key="target_modules"),
    ))
    return to_json(session, 201)


@sessions_bp.route("", methods=["GET"])
def list_sessions():  # type: ignore[no-untyped-def]
    sessions = call(operations().get_active_sessions())
    return to_json({
        "sessions": [s.model_dump(mode="json") for s in sessions],
        "count": len(sessions),
    })


@sessions_bp.route("/<session_id>")
def get_session(session_id: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().get_recovery_session(session_id)))


@sessions_bp.route("/<session_id>/execute", methods=["POST"])
def execute_session(session_id: str):  # type: ignore[no-untyped-def]
    """Run all remaining phases; responds when the session stops."""
    return to_json(call(operations().execute_recovery_session(session_id)))


@sessions_bp.route("/<session_id>/progress")
def session_progress(session_id: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().get_recovery_progress(session_id)))


@sessions_bp.route("/<session_id>/cancel", methods=["POST"])
def cancel_session(session_id: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().cancel_recovery_session(session_id)))


@sessions_bp.route("/<session_id>/audit")
def session_audit(session_id: str):  # type: ignore[no-untyped-def]
    """Audit ledger entries for the session, oldest first."""
    return to_json(call(operations().get_session_audit(session_id)))
