"""
Error taxonomy for the HTTP layer.

Services raise these; the route class in `routing.py` turns each into a
`{"error": message}` JSON body with the matching status code.
"""


class ApiError(Exception):
    """Base class: an error that maps directly onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ApiError):
    """Malformed or missing input."""

    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    """Duplicate id, caught by the pre-check or by the insert itself."""

    status_code = 409


class DependencyError(ApiError):
    """The repository or the cost service failed.

    The message is the underlying cause's message, unsanitized.
    """

    status_code = 500


class WriteRejectedError(ApiError):
    """The repository refused an insert for a reason other than a duplicate id."""

    status_code = 400
