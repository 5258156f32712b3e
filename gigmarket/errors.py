"""
Typed errors raised by the marketplace core.

Every error that blocks a user action carries a specific reason. Only
StorageError is retryable; everything else reflects a business rule and
will fail the same way on retry.
"""

from typing import Optional

from gigmarket.protocols import GigmarketError


class MarketError(GigmarketError):
    """Base exception for marketplace operations."""

    retryable = False


class StorageError(MarketError):
    """Persistence is unreachable or failed mid-write."""

    retryable = True

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class JobNotFound(MarketError):
    """Job does not exist."""

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidTransition(MarketError):
    """Job status change rejected.

    Either the stored status did not match the expected one (a concurrent
    writer got there first) or the edge is not part of the state machine.
    """

    def __init__(self, job_id: str, from_status: str, to_status: str, actual: Optional[str] = None):
        if actual is not None and actual != from_status:
            message = f"Job {job_id} is {actual}, expected {from_status} (cannot move to {to_status})"
        else:
            message = f"Cannot transition job {job_id} from {from_status} to {to_status}"
        super().__init__(message)
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status
        self.actual = actual


class Forbidden(MarketError):
    """Actor is not allowed to perform this action."""

    pass


class ProposalNotFound(MarketError):
    """No proposal from this freelancer on this job."""

    def __init__(self, job_id: str, freelancer_id: str):
        super().__init__(f"No proposal from {freelancer_id} on job {job_id}")
        self.job_id = job_id
        self.freelancer_id = freelancer_id


class JobNotOpen(MarketError):
    """Job is no longer accepting proposals."""

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} is not accepting proposals (status: {status})")
        self.job_id = job_id
        self.status = status


class InsufficientFunds(MarketError):
    """Balance too low for the requested debit."""

    def __init__(self, user_id: str, required, available):
        super().__init__(f"Insufficient funds for {user_id}: need {required}, have {available}")
        self.user_id = user_id
        self.required = required
        self.available = available


class DuplicateHold(MarketError):
    """An escrow hold is already active for the job."""

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} already has an active escrow hold")
        self.job_id = job_id


class HoldNotFound(MarketError):
    """Job never had an escrow hold."""

    def __init__(self, job_id: str):
        super().__init__(f"No escrow hold for job {job_id}")
        self.job_id = job_id


class InvalidHoldState(MarketError):
    """Hold is in a terminal state that conflicts with the request."""

    def __init__(self, job_id: str, state: str, requested: str):
        super().__init__(f"Cannot {requested} hold for job {job_id}: hold is {state}")
        self.job_id = job_id
        self.state = state
        self.requested = requested


class TransactionNotFound(MarketError):
    """Transaction does not exist."""

    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction {transaction_id} not found")
        self.transaction_id = transaction_id


class JobNotCompleted(MarketError):
    """Job has not been completed, so it cannot be reviewed yet."""

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} cannot be reviewed until completed (status: {status})")
        self.job_id = job_id
        self.status = status


class DuplicateReview(MarketError):
    """The reviewer already reviewed this job."""

    def __init__(self, job_id: str, reviewer_id: str):
        super().__init__(f"{reviewer_id} has already reviewed job {job_id}")
        self.job_id = job_id
        self.reviewer_id = reviewer_id
