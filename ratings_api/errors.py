"""
Error taxonomy for the API.

Every domain failure is raised as an ``ApiError`` subclass and rendered by the
handlers in ``register_error_handlers`` as the standard error envelope.
"""
import logging
import traceback

from flask import Flask, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500
    default_message = 'Internal server error'
    
    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ApiError):
    status_code = 400
    default_message = 'Invalid request'


class Unauthenticated(ApiError):
    status_code = 401
    default_message = 'Authentication required'


class Forbidden(ApiError):
    status_code = 403
    default_message = 'You do not have permission to access this resource'


class NotFound(ApiError):
    status_code = 404
    default_message = 'Resource not found'


class Conflict(ApiError):
    status_code = 409
    default_message = 'Resource conflict'


class InvalidState(ApiError):
    status_code = 409
    default_message = 'Operation not allowed in the current state'


class InternalError(ApiError):
    status_code = 500
    default_message = 'Internal server error'


def error_response(message: str, status_code: int, trace: str = None):
    body = {'status': 'error', 'message': message}
    if trace:
        body['trace'] = trace
    return jsonify(body), status_code


def register_error_handlers(app: Flask):
    """Render every failure in the standard error envelope."""
    from .models import db
    
    @app.errorhandler(ApiError)
    def handle_api_error(error: ApiError):
        if isinstance(error, InternalError):
            db.session.rollback()
        return error_response(error.message, error.status_code)
    
    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return error_response(error.description, error.code)
    
    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception(f"Database error: {error}")
        trace = traceback.format_exc() if current_app.config.get('EXPOSE_ERROR_DETAILS') else None
        return error_response(InternalError.default_message, 500, trace)
    
    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        db.session.rollback()
        logger.exception(f"Unhandled error: {error}")
        trace = traceback.format_exc() if current_app.config.get('EXPOSE_ERROR_DETAILS') else None
        return error_response(InternalError.default_message, 500, trace)
