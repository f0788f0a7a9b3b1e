from __future__ import annotations


NOT_FOUND = "NOT_FOUND"
FORBIDDEN = "FORBIDDEN"
INVALID_TRANSITION = "INVALID_TRANSITION"
INVALID_REFERENCE = "INVALID_REFERENCE"
INVALID_REQUEST = "INVALID_REQUEST"
CONFLICT = "CONFLICT"
UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
INTERNAL = "INTERNAL"


class OrderError(Exception):
    """Business-rule failure raised inside a service and turned into a result at its boundary."""

    code = INTERNAL
    status_code = 500

    def __init__(self, message: str = "", *, data=None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.data = data


class NotFound(OrderError):
    code = NOT_FOUND
    status_code = 404


class Forbidden(OrderError):
    code = FORBIDDEN
    status_code = 403


class InvalidTransition(OrderError):
    code = INVALID_TRANSITION
    status_code = 400


class InvalidReference(OrderError):
    code = INVALID_REFERENCE
    status_code = 400


class InvalidRequest(OrderError):
    code = INVALID_REQUEST
    status_code = 400


class Conflict(OrderError):
    code = CONFLICT
    status_code = 409
