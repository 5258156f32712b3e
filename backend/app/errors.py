"""Map core marketplace errors to HTTP responses."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from gigmarket.errors import (
    DuplicateHold,
    DuplicateReview,
    Forbidden,
    HoldNotFound,
    InsufficientFunds,
    InvalidHoldState,
    InvalidTransition,
    JobNotCompleted,
    JobNotFound,
    JobNotOpen,
    MarketError,
    ProposalNotFound,
    StorageError,
    TransactionNotFound,
)

from .logging_config import get_logger

logger = get_logger("errors")

# First match wins, so subclasses go before their bases
ERROR_STATUS = (
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (JobNotFound, status.HTTP_404_NOT_FOUND),
    (ProposalNotFound, status.HTTP_404_NOT_FOUND),
    (HoldNotFound, status.HTTP_404_NOT_FOUND),
    (TransactionNotFound, status.HTTP_404_NOT_FOUND),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (JobNotOpen, status.HTTP_409_CONFLICT),
    (JobNotCompleted, status.HTTP_409_CONFLICT),
    (DuplicateReview, status.HTTP_409_CONFLICT),
    (DuplicateHold, status.HTTP_409_CONFLICT),
    (InvalidHoldState, status.HTTP_409_CONFLICT),
    (InsufficientFunds, status.HTTP_402_PAYMENT_REQUIRED),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: MarketError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({code}): {exc}")
    return JSONResponse(
        status_code=code,
        content={
            "detail": str(exc),
            "error": type(exc).__name__,
            "retryable": exc.retryable,
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketError, market_error_handler)
