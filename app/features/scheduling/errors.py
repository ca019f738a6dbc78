"""
Exceptions raised by the scheduling feature.

Routers map these onto HTTP status codes; services raise them and let the
caller decide whether a failure is fatal.
"""


class SchedulingError(Exception):
    """Base exception for scheduling operations."""

    def __init__(
        self,
        message: str,
        session_id: str | None = None,
        error_code: str | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.session_id = session_id
        self.error_code = error_code
        self.recoverable = recoverable


class SessionValidationError(SchedulingError):
    """Session parameters were rejected before any side effect."""

    def __init__(self, message: str):
        super().__init__(message, error_code="invalid_params")


class SessionNotFoundError(SchedulingError):
    def __init__(self, session_id: str):
        super().__init__(
            f"Session {session_id} not found", session_id=session_id, error_code="not_found"
        )


class CandidateNotFoundError(SchedulingError):
    def __init__(self, candidate_id: str, session_id: str):
        super().__init__(
            f"Candidate {candidate_id} not found in session {session_id}",
            session_id=session_id,
            error_code="not_found",
        )
        self.candidate_id = candidate_id


class SessionStateError(SchedulingError):
    """The session's current status does not allow the requested operation."""

    def __init__(self, message: str, session_id: str | None = None, status: str | None = None):
        super().__init__(message, session_id=session_id, error_code="invalid_state")
        self.status = status


class InvalidHoldTransitionError(SchedulingError):
    def __init__(self, current: str, target: str):
        super().__init__(
            f"Invalid hold transition: '{current}' -> '{target}'. "
            f"Hold in '{current}' state cannot transition to '{target}'.",
            error_code="invalid_hold_transition",
        )
        self.current = current
        self.target = target


class HoldTimeoutError(SchedulingError):
    """Hold timeout or duration outside the allowed bounds."""

    def __init__(self, message: str):
        super().__init__(message, error_code="invalid_hold_timeout")


class RemoteSolverError(SchedulingError):
    """The remote solver failed; callers fall back to the local solver."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, error_code="remote_solver_failed", recoverable=True)
        self.status_code = status_code


class SchedulingStoreError(SchedulingError):
    """A request to the per-user store actor failed."""

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        status_code: int | None = None,
    ):
        super().__init__(message, error_code="store_error")
        self.operation = operation
        self.status_code = status_code


class HoldExtensionError(SchedulingError):
    """Only ``held`` holds can be extended."""

    def __init__(self, message: str, session_id: str | None = None):
        super().__init__(message, session_id=session_id, error_code="invalid_hold_state")
