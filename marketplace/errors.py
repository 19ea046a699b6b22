"""
API errors and the JSON envelope every endpoint answers with.

Success:  {"success": true, "data": {...}}
Failure:  {"success": false, "error": {"code": "...", "message": "..."}}
"""

import functools
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from marketplace.extensions import db

logger = logging.getLogger(__name__)


class ApiError(Exception):
    code = 'INTERNAL_ERROR'
    status = 500

    def __init__(self, message, code=None, status=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status:
            self.status = status

    def details(self):
        return {}


class Unauthorized(ApiError):
    code = 'UNAUTHORIZED'
    status = 401

    def __init__(self, message='No autenticado'):
        super().__init__(message)


class Forbidden(ApiError):
    code = 'FORBIDDEN'
    status = 403


class ValidationError(ApiError):
    code = 'VALIDATION_ERROR'
    status = 400


class NotFound(ApiError):
    code = 'NOT_FOUND'
    status = 404


class CooldownActive(ApiError):
    code = 'COOLDOWN_ACTIVE'
    status = 400

    def __init__(self, message, days_remaining):
        super().__init__(message)
        self.days_remaining = days_remaining

    def details(self):
        return {'daysRemaining': self.days_remaining}


class Conflict(ApiError):
    code = 'CONFLICT'
    status = 409


def success(data=None, status=200):
    return jsonify({'success': True, 'data': data}), status


def error_response(code, message, status, details=None):
    return jsonify({
        'success': False,
        'error': {'code': code, 'message': message, **(details or {})},
    }), status


def handles_errors(message):
    """
    Boundary for a route: anything that is not an ApiError is logged,
    the session is rolled back and the caller gets INTERNAL_ERROR with
    the route's own message.
    """
    def decorator(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except (ApiError, HTTPException):
                raise
            except Exception:
                db.session.rollback()
                logger.exception("Unhandled error in %s", view.__name__)
                return error_response('INTERNAL_ERROR', message, 500)
        return wrapper
    return decorator


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(err):
        return error_response(err.code, err.message, err.status, err.details())
