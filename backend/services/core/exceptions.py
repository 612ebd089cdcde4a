"""Typed outcomes returned by the lease engine.

Every kind maps to a stable error code, an HTTP status and a message the
user can act on. Conflict and Expired are expected outcomes of multi-party
negotiation, so their messages say that someone or something else changed
the record first.
"""


class LeaseEngineError(Exception):
    """Base class for all lease engine failures."""
    code = "lease_engine_error"
    http_status = 400
    default_message = "The request could not be completed."

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class NotFoundError(LeaseEngineError):
    """Raised when a match, agreement, driver or load cannot be found."""
    code = "not_found"
    http_status = 404
    default_message = "The requested record could not be found."


class ForbiddenError(LeaseEngineError):
    """Raised when the actor is not the party allowed to take this action."""
    code = "forbidden"
    http_status = 403
    default_message = "You are not the party who can take this action."


class InvalidTransitionError(LeaseEngineError):
    """Raised when the current status does not permit the requested action."""
    code = "invalid_transition"
    http_status = 409
    default_message = "This action is not available in the current state."


class ExpiredError(LeaseEngineError):
    """Raised when a match offer is answered after its expiry."""
    code = "expired"
    http_status = 410
    default_message = (
        "This offer expired before it was answered. "
        "Send a new match request to continue."
    )


class AlreadySignedError(LeaseEngineError):
    """Raised when a signature slot on the agreement is already filled."""
    code = "already_signed"
    http_status = 409
    default_message = "This agreement has already been signed for this role."


class AlreadyRatedError(LeaseEngineError):
    """Raised when a completed agreement has already been rated."""
    code = "already_rated"
    http_status = 409
    default_message = "A rating has already been recorded for this trip."


class ConflictError(LeaseEngineError):
    """Raised when another request changed the record between read and write."""
    code = "conflict"
    http_status = 409
    default_message = (
        "Someone else already changed this. Refresh to see the latest state."
    )


class PreconditionError(LeaseEngineError):
    """Raised when a business precondition is not met (e.g. trip never started)."""
    code = "precondition_failed"
    http_status = 400
    default_message = "A required step has not been completed yet."


class OperationTimeoutError(LeaseEngineError):
    """Raised when an operation's deadline passed before it could finish."""
    code = "timeout"
    http_status = 504
    default_message = "The request took too long. Please try again."
