"""
Module routes — per-module health, dependencies, builds, and recovery.
"""

from __future__ import annotations

from flask import Blueprint

from modrecovery.ui.web.helpers import call, json_body, module_ids_from, operations, to_json

modules_bp = Blueprint("modules", __name__)


@modules_bp.route("")
def list_modules():  # type: ignore[no-untyped-def]
    """All modules with health summary."""
    return to_json(call(operations().get_modules()))


@modules_bp.route("/validate", methods=["POST"])
def validate_modules():  # type: ignore[no-untyped-def]
    data = json_body()
    return to_json(call(operations().validate_modules(module_ids_from(data))))


@modules_bp.route("/<module_id>")
def get_module(module_id: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().get_module(module_id)))


@modules_bp.route("/<module_id>", methods=["PUT", "POST"])
def update_module(module_id: str):  # type: ignore[no-untyped-def]
    """Apply a module command.

    Body: ``{"action": "initialize|recover|validate|reset|build", ...}``.
    """
    return to_json(call(operations().update_module(module_id, json_body())))


@modules_bp.route("/<module_id>/health")
def module_health(module_id: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().get_module_health(module_id)))


@modules_bp.route("/<module_id>/recover", methods=["POST"])
def recover_module(module_id: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().recover_module(module_id)))


@modules_bp.route("/<module_id>/validate", methods=["POST"])
def validate_module(module_id: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().validate_module(module_id)))


@modules_bp.route("/<module_id>/build", methods=["POST"])
def build_module(module_id: str):  # type: ignore[no-untyped-def]
    data = json_body()
    return to_json(call(operations().build_module(module_id, force=data.get("force") is True)))


@modules_bp.route("/<module_id>/dependencies")
def module_dependencies(module_id: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().get_module_dependencies(module_id)))


@modules_bp.route("/<module_id>/build-status")
def module_build_status(module_id: str):  # type: ignore[no-untyped-def]
    return to_json(call(operations().get_module_build_status(module_id)))
