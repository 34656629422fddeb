import logging
from datetime import datetime, timezone

import httpx
from flask import jsonify, request
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)

# PostgREST / Postgres error codes surfaced by the Supabase client
DATABASE_ERRORS = {
    "PGRST116": ("Resource not found", "NOT_FOUND", 404),
    "23505": ("Duplicate entry", "DUPLICATE_ENTRY", 409),
    "23503": ("Referenced record not found", "FOREIGN_KEY_VIOLATION", 400),
    "23514": ("Data validation failed", "VALIDATION_ERROR", 400),
    "42P01": ("Table not found", "TABLE_NOT_FOUND", 500),
    "42501": ("Insufficient permissions", "PERMISSION_DENIED", 403),
}


class AppError(Exception):
    def __init__(self, message, code="UNKNOWN_ERROR", status_code=500, context=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.context = context

    def __repr__(self):
        return f"AppError({self.code}, {self.status_code}, {self.message!r})"


def handle_api_error(error, context=None):
    """Normalise any exception raised around a backend call into an AppError."""
    logger.error("API error in %s: %s", context or "unknown context", error)

    if isinstance(error, AppError):
        return error

    code = getattr(error, "code", None)
    if isinstance(code, str) and code:
        if code in DATABASE_ERRORS:
            message, app_code, status = DATABASE_ERRORS[code]
            return AppError(message, app_code, status, context)
        message = getattr(error, "message", None) or str(error)
        return AppError(message, "DATABASE_ERROR", 500, context)

    if isinstance(error, httpx.TransportError):
        return AppError("Network error - please check your connection", "NETWORK_ERROR", 503, context)

    if isinstance(error, Exception) and str(error):
        return AppError(str(error), "UNKNOWN_ERROR", 500, context)

    return AppError("An unexpected error occurred", "UNKNOWN_ERROR", 500, context)


def is_backend_error(error):
    """PostgREST errors carry a string ``code``; network failures are httpx transport errors."""
    code = getattr(error, "code", None)
    return (isinstance(code, str) and bool(code)) or isinstance(error, httpx.TransportError)


def create_error_response(error):
    return {
        "error": {
            "message": error.message,
            "code": error.code,
            "statusCode": error.status_code,
            "context": error.context,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def _app_error(err):
        return jsonify(create_error_response(err)), err.status_code

    @app.errorhandler(HTTPException)
    def _http_error(err):
        return jsonify({"success": False, "error": err.description}), err.code

    @app.errorhandler(Exception)
    def _unhandled(err):
        if is_backend_error(err):
            mapped = handle_api_error(err, request.path)
            return jsonify(create_error_response(mapped)), mapped.status_code
        # Last-resort fallback: the caller may simply retry.
        app.logger.exception("Unhandled error: %s", err)
        return jsonify({"success": False, "error": "Something went wrong", "retry": True}), 500
