"""
HTTP API shared helpers.

Functions used across multiple route blueprints: access to the engine
and its runner, request-body parsing, JSON serialization of engine
results, and the error-code → HTTP status mapping.
"""

from __future__ import annotations

import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

from flask import Flask, Response, current_app, jsonify, request

from modrecovery.core.errors import InvalidArgumentError, RecoveryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

HTTP_STATUS = {
    "invalid-argument": 400,
    "not-found": 404,
    "failed-precondition": 409,
    "internal": 500,
}


def operations() -> Any:
    """The RecoveryOperations of the running app."""
    return current_app.config["ENGINE"].operations


def call(coro: Coroutine[Any, Any, T]) -> T:
    """Run an engine coroutine on the app's engine loop."""
    return current_app.config["ENGINE_RUNNER"].run(coro)


def json_body() -> dict[str, Any]:
    """The request's JSON object body; an absent body is an empty object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgumentError("Request body must be a JSON object")
    return data


def module_ids_from(data: dict[str, Any], key: str = "module_ids") -> list[str] | None:
    """Optional module id list from a body (or the ``module`` query args)."""
    value = data.get(key)
    if value is None:
        from_query = request.args.getlist("module")
        return from_query or None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidArgumentError(f"{key} must be a list of module IDs")
    return value


def confirmed(data: dict[str, Any]) -> bool:
    """Only a literal ``true`` confirms a destructive request."""
    return data.get("confirmation") is True


def to_json(result: Any, status: int = 200) -> tuple[Response, int]:
    if hasattr(result, "model_dump"):
        result = result.model_dump(mode="json")
    elif hasattr(result, "to_dict"):
        result = result.to_dict()
    elif isinstance(result, list):
        result = [
            r.model_dump(mode="json") if hasattr(r, "model_dump") else r
            for r in result
        ]
    return jsonify(result), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(RecoveryError)
    def _recovery_error(e: RecoveryError):  # type: ignore[no-untyped-def]
        status = HTTP_STATUS.get(e.code, 500)
        if status >= 500:
            logger.error("Engine error on %s %s: %s", request.method, request.path, e.message)
        else:
            logger.info("%s %s → %d %s", request.method, request.path, status, e.message)
        return jsonify(e.to_dict()), status
