# dailydues/services/errors.py
"""
Failures raised by service operations. Every check runs before the first
write, so raising one of these never leaves a partial mutation behind.
"""


class DomainError(Exception):
    status_code = 400
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"message": self.message, "error": self.kind}


class NotAuthenticated(DomainError):
    status_code = 401
    kind = "not_authenticated"


class NotAuthorized(DomainError):
    status_code = 403
    kind = "not_authorized"


class NotFound(DomainError):
    status_code = 404
    kind = "not_found"


class ValidationError(DomainError):
    status_code = 400
    kind = "validation_error"


class StateConflict(DomainError):
    status_code = 409
    kind = "state_conflict"
