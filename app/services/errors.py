from fastapi import status


class LoanEngineError(Exception):
    """Base class for rejected engine operations.

    These are user-facing outcomes (the request is refused with a reason),
    never process failures. The API layer maps them to ``status_code``.
    """
    reason = "engine_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = None):
        self.message = message or self.reason.replace("_", " ")
        super().__init__(self.message)


class LoanLimitExceeded(LoanEngineError):
    reason = "loan_limit_exceeded"
    status_code = status.HTTP_409_CONFLICT


class InvalidTransition(LoanEngineError):
    reason = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class AlreadyQueued(LoanEngineError):
    reason = "already_queued"
    status_code = status.HTTP_409_CONFLICT


class NotQueued(LoanEngineError):
    reason = "not_queued"
    status_code = status.HTTP_404_NOT_FOUND


class Expired(LoanEngineError):
    reason = "expired"
    status_code = status.HTTP_410_GONE


class ResourceUnavailable(LoanEngineError):
    reason = "resource_unavailable"
    status_code = status.HTTP_409_CONFLICT


class AlreadyEnrolled(LoanEngineError):
    reason = "already_enrolled"
    status_code = status.HTTP_409_CONFLICT


class NotFound(LoanEngineError):
    reason = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDenied(LoanEngineError):
    reason = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN
