"""
JSON error envelope shared by every API endpoint.

Error responses always look like::

    {"ok": false, "error": CODE, "code": CODE, "message": "...", "details": ...}

Services raise :class:`ApiError` (usually via the helpers below); the handler
registered in :func:`register_error_handlers` renders it.
"""
from __future__ import annotations

from typing import Any

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


def build_error_body(code: str, message: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"ok": False, "error": code, "code": code, "message": message}
    if details is not None:
        body["details"] = details
    return body


def error_response(status_code: int, code: str, message: str, details: Any = None):
    return jsonify(build_error_body(code, message, details)), status_code


def bad_request(message: str, code: str = "BAD_REQUEST", details: Any = None) -> ApiError:
    return ApiError(400, code, message, details)


def unauthorized(message: str, code: str = "UNAUTHORIZED", details: Any = None) -> ApiError:
    return ApiError(401, code, message, details)


def forbidden(message: str, code: str = "FORBIDDEN", details: Any = None) -> ApiError:
    return ApiError(403, code, message, details)


def not_found(message: str, code: str = "NOT_FOUND", details: Any = None) -> ApiError:
    return ApiError(404, code, message, details)


def conflict(message: str, code: str = "CONFLICT", details: Any = None) -> ApiError:
    return ApiError(409, code, message, details)


def too_many_requests(message: str, code: str = "TOO_MANY_REQUESTS", details: Any = None) -> ApiError:
    return ApiError(429, code, message, details)


def internal_server_error(
    message: str = "Internal Server Error", code: str = "INTERNAL_SERVER_ERROR", details: Any = None
) -> ApiError:
    return ApiError(500, code, message, details)


def _code_for_status(status: int) -> str:
    return {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        409: "CONFLICT",
        413: "PAYLOAD_TOO_LARGE",
        429: "TOO_MANY_REQUESTS",
    }.get(status, "INTERNAL_SERVER_ERROR" if status >= 500 else "ERROR")


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("ApiError %s %s (request_id=%s)", e.code, e.message, getattr(g, "request_id", None))
        return error_response(e.status_code, e.code, e.message, e.details)

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        status = e.code or 500
        return error_response(status, _code_for_status(status), e.description or e.name)

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return error_response(500, "INTERNAL_SERVER_ERROR", "Internal Server Error")
