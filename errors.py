#=======================================================================================================
#   Application errors and the JSON error handlers registered on the Flask app
#=======================================================================================================
import traceback

from flask import jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from extensions import db


class AppError(Exception):
    """Base application error; carries the HTTP status it maps to."""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class Unauthenticated(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class IdGenerationExhausted(AppError):
    status_code = 500


class UpstreamFailure(AppError):
    status_code = 502


def error_response(message, status_code, **extra):
    body = {"success": False, "message": message}
    body.update(extra)
    return jsonify(body), status_code


def register_error_handlers(app):

    @app.errorhandler(AppError)
    def handle_app_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            app.logger.error(f"{error.__class__.__name__}: {error.message}")
        return error_response(error.message, error.status_code)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        app.logger.warning(f"Integrity error: {error.orig}")
        return error_response("Duplicate field value entered", 409)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error):
        return error_response("Uploaded file is too large (max 5MB)", 413)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return error_response(error.description or error.name, error.code)

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        db.session.rollback()
        app.logger.error(f"Unhandled error: {error}", exc_info=True)
        extra = {}
        if not app.config.get("FLASK_ENV") == "production":
            extra["stack"] = traceback.format_exc()
        return error_response("Internal Server Error", 500, **extra)
