"""Domain exception hierarchy for tinyci.

Services raise these instead of bare ``ValueError`` so that the global
exception handler in ``main.py`` can map them to the correct HTTP status
code without fragile string matching.

Pipeline errors (``PipelineError`` and subclasses) never reach an HTTP
caller: the build request has already been acknowledged by the time they
happen, so the orchestrator only logs them.
"""


class CIError(Exception):
    """Base for all domain exceptions."""

    def __init__(self, message: str = "An unexpected error occurred", *, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(CIError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class BadRequestError(CIError):
    """Client sent an invalid request (400)."""

    def __init__(self, message: str = "Bad request"):
        super().__init__(message, status_code=400)


# ---------------------------------------------------------------------------
# Pipeline step failures
# ---------------------------------------------------------------------------


class PipelineError(CIError):
    """A build pipeline step failed; terminal for that build."""


class LaunchError(PipelineError):
    """An external process could not be started at all."""

    def __init__(self, command: str, reason: str = ""):
        message = f"Could not launch '{command}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.command = command


class ExecutionError(PipelineError):
    """An external process started but exited with a non-zero status."""

    def __init__(self, command: str, exit_code: int, output: str = ""):
        super().__init__(f"'{command}' exited with status {exit_code}")
        self.command = command
        self.exit_code = exit_code
        self.output = output


class ResolutionError(PipelineError):
    """The commit hash of a fresh checkout could not be read or parsed."""


class PersistenceError(PipelineError):
    """The build record store rejected a write."""


class DeployError(CIError):
    """Launching a container from a built image failed (500)."""

    def __init__(self, message: str = "Error running Docker container"):
        super().__init__(message, status_code=500)


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
