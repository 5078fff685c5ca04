"""
Phase routes — the phase catalogue and per-session phase control.
"""

from __future__ import annotations

from flask import Blueprint

from modrecovery.ui.web.helpers import call, confirmed, json_body, operations, to_json

phases_bp = Blueprint("phases", __name__)


@phases_bp.route("")
def list_phases():  # type: ignore[no-untyped-def]
    phases = call(operations().get_phases())
    return to_json({"phases": phases, "total": len(phases)})


@phases_bp.route("/<phase_number>")
def get_phase(phase_number: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().get_phase(phase_number)))


@phases_bp.route("/<phase_number>/dependencies")
def phase_dependencies(phase_number: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().get_phase_dependencies(phase_number)))


@phases_bp.route("/<phase_number>/execute", methods=["POST"])
def execute_phase(phase_number: str):  # type: ignore[no-untyped-def]
    """Run one phase of a session.

    Body: ``{"session_id": "...", "options": {"halt_on_module_failure": false}}``.
    """
    data = json_body()
    result = call(operations().execute_phase(
        phase_number, data.get("session_id"), data.get("options") or None,
    ))
    return to_json(result)


@phases_bp.route("/<phase_number>/skip", methods=["POST"])
def skip_phase(phase_number: str):  # type: ignore[no-untyped-def]
    """Mark a phase skipped. Requires ``reason`` and ``confirmation: true``."""
    data = json_body()
    result = call(operations().skip_phase(
        phase_number,
        data.get("session_id"),
        data.get("reason"),
        confirmation=confirmed(data),
    ))
    return to_json(result)


@phases_bp.route("/status/<session_id>")
def phase_status(session_id: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().get_phase_status(session_id)))
