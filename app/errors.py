"""Domain exception hierarchy for Pluffy.

Services raise these instead of bare ``ValueError`` so that the global
exception handler in ``main.py`` can map them to the correct HTTP status
code without fragile string matching.
"""


class PluffyError(Exception):
    """Base for all domain exceptions."""

    def __init__(self, message: str = "An unexpected error occurred", *, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(PluffyError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class ValidationError(PluffyError):
    """Submission input is malformed or out of bounds (422).

    ``constraint`` names the rule that was broken (``"min_length"``,
    ``"max_length"``, ``"type"``) so callers can render it inline.
    """

    def __init__(self, message: str = "Invalid input", *, constraint: str = ""):
        super().__init__(message, status_code=422)
        self.constraint = constraint


class JobExecutionError(PluffyError):
    """A background job failed (agent construction, invocation or persistence).

    Never swallowed: the job runtime decides whether to retry.
    """

    def __init__(self, message: str = "Job execution failed", *, retryable: bool = True):
        super().__init__(message, status_code=500)
        self.retryable = retryable


def format_error_response(
    *,
    error: str,
    detail: object = None,
    request_id: str = "",
) -> dict:
    """Build a structured error response dict.

    Parameters
    ----------
    error : str
        Short error title (e.g. ``"Internal Server Error"``).
    detail : object
        Human-readable detail string or validation error list.
    request_id : str
        The request ID for tracing.

    Returns
    -------
    dict
        ``{"error": ..., "detail": ..., "request_id": ...}``
    """
    return {
        "error": error,
        "detail": detail if detail is not None else error,
        "request_id": request_id,
    }
