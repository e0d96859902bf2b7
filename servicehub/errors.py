"""
API error types and JSON response helpers

Services raise these exceptions; the error handlers registered in app.py turn
them into ``{'success': False, 'message': ...}`` responses.
"""
from flask import jsonify


class ApiError(Exception):
    """Base error carrying an HTTP status code"""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_response(self):
        return jsonify({'success': False, 'message': self.message}), self.status_code


class ValidationError(ApiError):
    status_code = 400


class ConflictError(ApiError):
    """Duplicate resource (existing proposal, review, open dispute...)"""
    status_code = 400


class UnauthorizedError(ApiError):
    status_code = 401


class ForbiddenError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class RateLimitError(ApiError):
    status_code = 429


class ServiceUnavailableError(ApiError):
    status_code = 503


class PaymentGatewayError(ApiError):
    status_code = 500


def ok(data=None, message='Success', status_code=200):
    """Standard success envelope"""
    return jsonify({'success': True, 'message': message, 'data': data}), status_code


def created(data=None, message='Created successfully'):
    return ok(data, message, 201)
