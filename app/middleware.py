# Folder: pulse/app/middleware.py
#
# Error capture for the Flask app.
# Routes don't need try/except - anything they raise ends up here,
# gets logged through the error logger (and so through alerting),
# and the client gets a JSON error instead of an HTML page.
#
#   DataSourceUnavailable → 503, logged as a database error
#   HTTPException         → passed through untouched (404, 405, 400 ...)
#   anything else         → 500, logged as an api error

import logging
from flask import request, jsonify
from werkzeug.exceptions import HTTPException
from errors import DataSourceUnavailable

logger = logging.getLogger(__name__)


def register_middleware(app, error_logger):
    """Call this in the app factory, after the routes are registered"""

    @app.errorhandler(DataSourceUnavailable)
    def handle_store_down(e):
        logger.error(f"Event store unavailable on {request.path}: {e}")
        error_logger.log_database_error(e, context={"endpoint": request.path})
        return jsonify({
            "success": False,
            "error": "Event store unavailable",
            "details": str(e)
        }), 503

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return e

        try:
            error_logger.log_api_error(
                e,
                endpoint=request.path,
                method=request.method,
                status_code=500,
                user_id=request.headers.get("X-User-ID")
            )
        except Exception as log_error:
            logger.error(f"Middleware error: {log_error}")

        details = {} if app.config.get("HIDE_ERROR_DETAILS") else {"details": str(e)}
        return jsonify({"success": False, "error": "Internal server error", **details}), 500
