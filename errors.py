"""
Error taxonomy for the API.

Every error a route can raise on purpose is an ``AppError``; the handlers in
``main.py`` render them as ``{"success": false, "message": ...}``.
"""
from fastapi import HTTPException


class AppError(HTTPException):
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(status_code=self.status_code, detail=self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AppError):
    status_code = 401
    default_message = "Unauthorized"


class AuthorizationError(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Already exists"


class UnexpectedError(AppError):
    status_code = 500
