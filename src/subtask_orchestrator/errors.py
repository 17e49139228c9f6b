"""Typed failures raised by the orchestration engine.

Every public engine operation either returns a valid record or raises one of
these. The HTTP layer maps ``status_code`` onto the response; the CLI prints the
message and exits non-zero.
"""

from __future__ import annotations


class OrchestrationError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(OrchestrationError):
    """A plan, sub-task or agent ID does not exist."""

    status_code = 404


class InvalidStateError(OrchestrationError):
    """The requested transition is not legal from the record's current state."""

    status_code = 400


class ExternalFailureError(OrchestrationError):
    """The executor hand-off or callback channel failed."""

    status_code = 424
