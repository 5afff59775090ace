"""
Error Taxonomy
==============

Exceptions raised by guards and handlers. Each carries the HTTP status the
API layer surfaces; the handlers in lawbridge.api turn them into JSON bodies
with a ``message`` field.

- MalformedRequest (400): missing identifiers or request context
- Unauthenticated  (401): no usable credentials
- Forbidden        (403): authenticated but not allowed
- NotFound         (404): absent, soft-deleted, or hidden from the caller
- Conflict         (409): uniqueness violations
- InternalError    (500): unexpected failures (generic message to caller)
"""

from typing import Any, Optional


class LawBridgeError(Exception):
    status_code = 500
    code = "error"
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class MalformedRequest(LawBridgeError):
    status_code = 400
    code = "bad_request"
    default_message = "Malformed request"


class Unauthenticated(LawBridgeError):
    status_code = 401
    code = "unauthorized"
    default_message = "Not authorized, no token"


class Forbidden(LawBridgeError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied"


class NotFound(LawBridgeError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class Conflict(LawBridgeError):
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class InternalError(LawBridgeError):
    status_code = 500
    code = "internal_error"
    default_message = "Internal server error"
