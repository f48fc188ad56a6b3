from typing import Any


class AppException(Exception):
    """Base application exception.

    `code` is a stable, machine-readable error kind; `message` is the short
    human-readable reason shown to the caller.
    """

    code: str = "APP_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
        code: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if code is not None:
            self.code = code
        super().__init__(self.message)


class NotFoundError(AppException):
    """Resource not found."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any = None, message: str | None = None):
        if message is None:
            message = f"{resource} not found"
            if identifier:
                message = f"{resource} with id={identifier} not found"
        super().__init__(message=message, status_code=404)


class ValidationError(AppException):
    """Request rejected before any mutation."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, code: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=400, details=details, code=code)


class AuthenticationError(AppException):
    """Authentication failed."""

    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message=message, status_code=401)


class AuthorizationError(AppException):
    """Not authorized to perform action."""

    code = "AUTHORIZATION_ERROR"

    def __init__(self, message: str = "Not authorized", code: str | None = None):
        super().__init__(message=message, status_code=403, code=code)


class BusinessRuleViolation(AppException):
    """Operation refused by a ledger rule; entity state is unchanged."""

    code = "BUSINESS_RULE_VIOLATION"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=400, details=details)


class InsufficientPortionsError(BusinessRuleViolation):
    """Not enough unreserved portions for the request."""

    code = "INSUFFICIENT_PORTIONS"

    def __init__(self, listing_id: int, requested: int, available: int | None = None):
        details: dict[str, Any] = {"listing_id": listing_id, "requested": requested}
        if available is not None:
            details["available"] = available
        super().__init__("Not enough portions available", details=details)


class ExceedsReservationCapError(BusinessRuleViolation):
    code = "EXCEEDS_RESERVATION_CAP"

    def __init__(self, requested: int, cap: int, available: int):
        super().__init__(
            f"You can only reserve up to {cap} portions ({available} available)",
            details={"requested": requested, "cap": cap, "available": available},
        )


class DuplicateReservationError(BusinessRuleViolation):
    code = "DUPLICATE_RESERVATION"

    def __init__(self, listing_id: int):
        super().__init__(
            "You already have an open reservation for this listing",
            details={"listing_id": listing_id},
        )


class DepositNotPaidError(BusinessRuleViolation):
    code = "DEPOSIT_NOT_PAID"

    def __init__(self):
        super().__init__("Deposit must be paid before collection")


class AlreadyCollectedError(BusinessRuleViolation):
    code = "ALREADY_COLLECTED"

    def __init__(self):
        super().__init__("This reservation has already been collected")


class AlreadyTerminalError(BusinessRuleViolation):
    code = "ALREADY_TERMINAL"

    def __init__(self, status: str):
        super().__init__(f"Listing is already {status}", details={"status": status})


class DailyLimitExceededError(BusinessRuleViolation):
    code = "DAILY_LIMIT_EXCEEDED"

    def __init__(self, limit: int, collected_today: int):
        super().__init__(
            f"Limit reached: you can collect at most {limit} portions per day",
            details={"limit": limit, "collected_today": collected_today},
        )


class ActiveListingLimitError(BusinessRuleViolation):
    code = "ACTIVE_LISTING_LIMIT"

    def __init__(self, limit: int):
        super().__init__(
            f"You can only have {limit} active listing(s) at a time",
            details={"limit": limit},
        )


class PriorityWindowActiveError(BusinessRuleViolation):
    code = "PRIORITY_WINDOW_ACTIVE"

    def __init__(self):
        super().__init__("This listing is reserved for charitable organisations right now")


class ConflictError(AppException):
    """Concurrent modification detected; re-read and retry."""

    code = "CONFLICT"

    def __init__(self, message: str = "The listing was modified concurrently, please retry"):
        super().__init__(message=message, status_code=409)


class UpstreamError(AppException):
    """Backing store or collaborator unavailable."""

    code = "UPSTREAM_ERROR"

    def __init__(self, message: str = "Service temporarily unavailable", status_code: int = 503):
        super().__init__(message=message, status_code=status_code)


class OperationTimeoutError(UpstreamError):
    """Outcome unknown: the caller must re-read state before retrying."""

    code = "TIMEOUT"

    def __init__(self):
        super().__init__(
            message="The operation timed out; check the current state before retrying",
            status_code=504,
        )


class InvalidPortionCountError(ValidationError):
    code = "INVALID_PORTION_COUNT"

    def __init__(self, minimum: int, maximum: int):
        super().__init__(
            f"Portions must be between {minimum} and {maximum}",
            field="portions_to_collect",
        )


class InvalidQRCodeError(NotFoundError):
    code = "INVALID_QR_CODE"

    def __init__(self):
        super().__init__("QR code", message="Invalid QR code")


class NoActiveListingError(NotFoundError):
    code = "NO_ACTIVE_LISTING"

    def __init__(self):
        super().__init__("Listing", message="Vendor has no active food listing")


class ReservationNotFoundError(NotFoundError):
    code = "RESERVATION_NOT_FOUND"

    def __init__(self):
        super().__init__("Reservation")


class UnsupportedRoleError(AuthorizationError):
    code = "UNSUPPORTED_ROLE"

    def __init__(self, role: str):
        super().__init__(f"Role '{role}' cannot collect food")
