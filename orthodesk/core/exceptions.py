"""Exceptions shared by all orthodesk modules.

Every domain error carries a stable ``code`` so API views can map it to
a JSON error envelope without inspecting the message.
"""


class OrthodeskError(Exception):
    """Base exception for orthodesk domain errors."""

    code = "ERROR"
    status = 400

    def __init__(self, message: str = "", *, code: str | None = None, details=None):
        self.message = message or self.__class__.__doc__ or self.code
        if code:
            self.code = code
        self.details = details
        super().__init__(self.message)


class NotFound(OrthodeskError):
    """Requested object does not exist in this clinic."""

    code = "NOT_FOUND"
    status = 404


class ValidationFailed(OrthodeskError):
    """Input failed validation."""

    code = "VALIDATION_ERROR"

    @classmethod
    def from_form(cls, form) -> "ValidationFailed":
        """Build from a bound Django form with errors."""
        return cls(
            "Invalid input",
            details={field: [str(e) for e in errors] for field, errors in form.errors.items()},
        )


class InvalidTransition(OrthodeskError):
    """Raised when a status transition is not allowed by the workflow graph."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str = ""):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Cannot transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, details={"from": from_status, "to": to_status})


class ClinicNotResolved(OrthodeskError):
    """No clinic could be determined for the request."""

    code = "CLINIC_REQUIRED"
