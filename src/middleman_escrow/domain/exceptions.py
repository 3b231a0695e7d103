"""Domain exceptions for the Middleman Escrow coordinator.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
A failed operation never leaves partial state behind: the surrounding
transaction is rolled back before the exception reaches the caller.
"""


class EscrowError(Exception):
    """Base exception for all domain errors."""

    retryable = False

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Lookup Errors ---


class RequestNotFoundError(EscrowError):
    """Raised when a middleman request ID does not exist."""

    def __init__(self, request_id: str) -> None:
        super().__init__(
            message=f"Middleman request not found: {request_id}",
            code="REQUEST_NOT_FOUND",
        )
        self.request_id = request_id


class UnauthorizedPartyError(EscrowError):
    """Raised when an email is not the party it claims to be on a request."""

    def __init__(self, request_id: str, email: str, role: str | None = None) -> None:
        party = f"the {role}" if role else "a party"
        super().__init__(
            message=f"{email} is not {party} on request {request_id}",
            code="UNAUTHORIZED_PARTY",
        )
        self.request_id = request_id
        self.email = email
        self.role = role


# --- Confirmation Code Errors ---


class ConfirmationCodeError(EscrowError):
    """Base exception for confirmation code redemption failures."""

    def __init__(self, message: str, code: str, request_id: str, role: str) -> None:
        super().__init__(message=message, code=code)
        self.request_id = request_id
        self.role = role


class CodeNotFoundError(ConfirmationCodeError):
    """Raised when no code was ever issued for (request, email, role)."""

    def __init__(self, request_id: str, role: str) -> None:
        super().__init__(
            message=f"No confirmation code issued for the {role} of request {request_id}",
            code="CODE_NOT_FOUND",
            request_id=request_id,
            role=role,
        )


class CodeExpiredError(ConfirmationCodeError):
    """Raised when a code is redeemed after its validity window."""

    def __init__(self, request_id: str, role: str) -> None:
        super().__init__(
            message="Confirmation code has expired. Request a new one.",
            code="CODE_EXPIRED",
            request_id=request_id,
            role=role,
        )


class CodeAlreadyUsedError(ConfirmationCodeError):
    """Raised when a code that was already consumed is redeemed again."""

    def __init__(self, request_id: str, role: str) -> None:
        super().__init__(
            message="This code has already been used.",
            code="CODE_ALREADY_USED",
            request_id=request_id,
            role=role,
        )


class CodeMismatchError(ConfirmationCodeError):
    """Raised when the supplied code differs from the stored one."""

    def __init__(self, request_id: str, role: str) -> None:
        super().__init__(
            message="Invalid confirmation code.",
            code="CODE_MISMATCH",
            request_id=request_id,
            role=role,
        )


# --- Settlement Errors ---


class NothingToWithdrawError(EscrowError):
    """Raised when a withdrawal finds no completed, unclaimed requests."""

    def __init__(self, email: str) -> None:
        super().__init__(
            message=f"No amount available for withdrawal for {email}",
            code="NOTHING_TO_WITHDRAW",
        )
        self.email = email


# --- Infrastructure Errors ---


class StorageUnavailableError(EscrowError):
    """Raised when the database cannot be reached or times out.

    This is the only error class callers should retry automatically.
    """

    retryable = True

    def __init__(self, detail: str = "") -> None:
        super().__init__(
            message="Storage is temporarily unavailable. Please retry.",
            code="STORAGE_UNAVAILABLE",
        )
        self.detail = detail


# --- Idempotency Errors ---


class DuplicateOperationError(EscrowError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )


# --- Upstream Errors ---


class MarketDataUnavailableError(EscrowError):
    """Raised when the crypto-currency listing cannot be fetched."""

    retryable = True

    def __init__(self, detail: str = "") -> None:
        super().__init__(
            message="Crypto-currency listing is temporarily unavailable. Please retry.",
            code="MARKET_DATA_UNAVAILABLE",
        )
        self.detail = detail
