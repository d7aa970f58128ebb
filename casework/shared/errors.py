"""Error taxonomy for the verification engine.

Every expected failure is an ``HTTPException`` subclass so services can raise
it directly and the HTTP boundary maps it to the right status code. The
``kind`` attribute is surfaced to callers alongside the message.
"""
from fastapi import HTTPException, status


class EngineError(HTTPException):
    status_code_default: int = status.HTTP_400_BAD_REQUEST
    kind: str = "error"

    def __init__(self, detail: str):
        super().__init__(status_code=self.status_code_default, detail=detail)


class ValidationError(EngineError):
    """Missing or malformed required input."""
    kind = "validation"


class AuthorizationError(EngineError):
    """Self-review, already-reviewed, or insufficient role."""
    status_code_default = status.HTTP_403_FORBIDDEN
    kind = "authorization"


class NotFoundError(EngineError):
    status_code_default = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class StateConflictError(EngineError):
    """The action is not legal for the subject's current status."""
    kind = "state_conflict"


class EvidenceMissingError(EngineError):
    """An approval could not be tied to a quote."""
    kind = "evidence_missing"


class InternalError(EngineError):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "internal"
