"""Exception taxonomy for the erasure workflow.

Submission-time errors (ValidationError, ConflictError, RequestNotFoundError)
are raised synchronously to the caller and never enter the pipeline.
Step-time errors (StepExecutionError and subclasses) are recorded on the
failing StepInstance and only escalate to the request when the step is
required and its retries are exhausted.
"""

from __future__ import annotations


class ErasureError(Exception):
    """Base class for all erasure workflow errors."""


class ValidationError(ErasureError):
    """Malformed submission: bad confirmation, missing reason, bad subject id."""


class ConflictError(ErasureError):
    """Submission or cancellation not allowed in the current state."""

    def __init__(
        self,
        message: str,
        *,
        existing_request_id: str | None = None,
        remaining_days: int | None = None,
    ) -> None:
        super().__init__(message)
        self.existing_request_id = existing_request_id
        self.remaining_days = remaining_days


class RequestNotFoundError(ErasureError):
    """No live or historical request carries the given id."""


class StepExecutionError(ErasureError):
    """A step's collaborator call failed."""

    retryable: bool = True


class StepTimeoutError(StepExecutionError):
    """A step exceeded its configured deadline."""


class VerificationFailedError(StepExecutionError):
    """Post-deletion check found the account still present."""


class LegalHoldError(StepExecutionError):
    """A legal hold blocks the cleanup step; retrying cannot help."""

    retryable = False


class AccountNotFoundError(ErasureError):
    """Identity provider reports that the account does not exist."""
