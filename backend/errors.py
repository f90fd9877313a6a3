"""
API error types and Flask error handlers

Every error response has the shape {"success": false, "message": "..."}.
"""

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto an HTTP status"""
    status_code = 500

    def __init__(self, message=None, status_code=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ApiError):
    """Invalid request"""
    status_code = 400


class NotFoundError(ApiError):
    """Resource not found"""
    status_code = 404


class ConflictError(ApiError):
    """Resource already exists"""
    status_code = 409


class UpstreamError(ApiError):
    """Data store request failed"""
    status_code = 500


def error_response(message, status_code):
    return jsonify({'success': False, 'message': message}), status_code


def register_error_handlers(app):
    """Install JSON error handlers on the Flask app"""

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        if error.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {error.message}",
                         exc_info=error.__cause__ is not None)
            # Upstream details stay in the logs
            return error_response('Internal server error', error.status_code)
        return error_response(error.message, error.status_code)

    @app.errorhandler(404)
    def handle_not_found(error):
        return error_response(f"Route {request.path} not found", 404)

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return error_response(f"Method {request.method} not allowed on {request.path}", 405)

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        if isinstance(error, HTTPException):
            return error_response(error.description, error.code)
        logger.error(f"Unhandled error on {request.method} {request.path}: {error}", exc_info=True)
        return error_response('Internal server error', 500)
