"""
Domain errors raised by the service layer.

Routers never translate these by hand: ``app.main`` registers a single
exception handler that renders any ``DomainError`` as a JSON body with the
class name under ``error`` and the HTTP status carried by the class.
"""


class DomainError(Exception):
    """Base class for every error the core surfaces to callers."""

    status_code: int = 400

    def __init__(self, detail: str, **extra) -> None:
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_dict(self) -> dict:
        return {"detail": self.detail, "error": type(self).__name__, **self.extra}


class NotFound(DomainError):
    """Referenced user, content item, comment or like does not exist."""

    status_code = 404


class DuplicateLike(DomainError):
    """A like already exists for the (user, content, type) triple."""

    status_code = 409


class Forbidden(DomainError):
    """The requester may not perform this mutation."""

    status_code = 403


class InvalidState(DomainError):
    """Operation is not valid for the current state, or an unknown content type."""

    status_code = 400


class InternalInconsistency(DomainError):
    """Stored data violates an invariant the code relies on."""

    status_code = 500


class CascadeInterrupted(DomainError):
    """
    A multi-step deletion failed partway through.

    Steps already committed stay committed; ``step`` names the step that
    failed and ``tally`` holds what had been removed so far.  Every step is
    idempotent, so re-issuing the same deletion finishes the job.
    """

    status_code = 500

    def __init__(self, detail: str, step: str, tally: dict) -> None:
        super().__init__(detail, step=step, tally=tally)
        self.step = step
        self.tally = tally
