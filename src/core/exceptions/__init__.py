from src.core.exceptions.base import (
    AppException,
    NotFoundError,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    BusinessRuleViolation,
    InsufficientPortionsError,
    ExceedsReservationCapError,
    DuplicateReservationError,
    DepositNotPaidError,
    AlreadyCollectedError,
    AlreadyTerminalError,
    DailyLimitExceededError,
    ActiveListingLimitError,
    PriorityWindowActiveError,
    ConflictError,
    UpstreamError,
    OperationTimeoutError,
    InvalidPortionCountError,
    InvalidQRCodeError,
    NoActiveListingError,
    ReservationNotFoundError,
    UnsupportedRoleError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "BusinessRuleViolation",
    "InsufficientPortionsError",
    "ExceedsReservationCapError",
    "DuplicateReservationError",
    "DepositNotPaidError",
    "AlreadyCollectedError",
    "AlreadyTerminalError",
    "DailyLimitExceededError",
    "ActiveListingLimitError",
    "PriorityWindowActiveError",
    "ConflictError",
    "UpstreamError",
    "OperationTimeoutError",
    "InvalidPortionCountError",
    "InvalidQRCodeError",
    "NoActiveListingError",
    "ReservationNotFoundError",
    "UnsupportedRoleError",
]
