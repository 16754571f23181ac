class ReservationError(Exception):
    """Base class for business-rule failures surfaced to the caller.

    Each subclass maps to one HTTP status; ``details`` carries anything the
    caller needs to correct the request (e.g. offending slot ids).
    """

    status_code = 400
    kind = "error"

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"error": self.message, "kind": self.kind}
        if self.details is not None:
            body["details"] = self.details
        return body


class NotFoundError(ReservationError):
    status_code = 404
    kind = "not_found"


class InvalidInputError(ReservationError):
    status_code = 400
    kind = "invalid_input"


class ConflictError(ReservationError):
    status_code = 409
    kind = "conflict"


class ForbiddenError(ReservationError):
    status_code = 403
    kind = "forbidden"
