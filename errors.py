"""
Domain errors shared by the REST handlers and the WebSocket channel.

Each error carries the HTTP status it maps to; the WebSocket channel reports
the same ``detail`` in an ``error`` event instead.
"""
from typing import List, Optional


class AppError(Exception):
    status_code = 500
    detail = "Server error"

    def __init__(self, detail: Optional[str] = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ValidationFailed(AppError):
    status_code = 400
    detail = "Invalid request"

    def __init__(self, result):
        self.violations: List = list(result.violations)
        super().__init__(result.message())


class DuplicateUser(AppError):
    status_code = 400
    detail = "User already exists"


class InvalidCredentials(AppError):
    status_code = 400
    detail = "Invalid credentials"


class NotAuthenticated(AppError):
    status_code = 401
    detail = "Please authenticate."


class NotParticipant(AppError):
    status_code = 403
    detail = "Not a participant of this chat"


class ChatNotFound(AppError):
    status_code = 404
    detail = "Chat not found"


class ContactNotFound(AppError):
    status_code = 400
    detail = "Contact not found"
