"""
Typed service failures.

Every failure carries the HTTP status it maps to so the responder can render
it without knowing which layer raised it.
"""
from typing import Any, List, Optional


class ServiceError(Exception):
    """Base class for recoverable, client-visible failures"""

    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, data: Any = None):
        self.message = message or self.default_message
        self.data = data
        self.type_tag: Optional[str] = None
        super().__init__(self.message)


class ValidationError(ServiceError):
    default_message = "Validation failed"

    def __init__(self, errors: List[dict], message: Optional[str] = None):
        super().__init__(message, data=errors)

    @property
    def errors(self) -> List[dict]:
        return self.data


class DuplicateConflict(ServiceError):
    default_message = "Record already exists"


class ReferenceNotFound(ServiceError):
    default_message = "Referenced record not found"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Record not found"


class InvalidState(ServiceError):
    default_message = "Operation not allowed in the current state"


class PartialReferenceNotFound(ServiceError):
    default_message = "Some records not found"


class InternalFailure(ServiceError):
    """Anything unanticipated, storage-engine errors included.

    ``detail`` keeps the original message for diagnostics; clients only see
    it when the app runs with DEBUG.
    """

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(None)
        self.detail = detail
