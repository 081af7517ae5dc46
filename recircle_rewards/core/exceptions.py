"""
Custom exception classes for the reward engine.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class RewardEngineError(Exception):
    """Base exception class for the reward distribution engine."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(RewardEngineError):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class ValidationError(RewardEngineError):
    """Raised when input validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class NotFoundError(RewardEngineError):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class InvalidTransitionError(RewardEngineError):
    """Raised when a distribution record cannot move to the requested state."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_TRANSITION", details)


class ExternalServiceError(RewardEngineError):
    """Raised when an external service error occurs."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "EXTERNAL_SERVICE_ERROR", details)


class LedgerError(RewardEngineError):
    """Raised when the VeChain Thor ledger cannot serve a request."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "LEDGER_ERROR"
    ):
        super().__init__(message, code, details)


# Validation exceptions
class InvalidAmountError(ValidationError):
    """Raised when a reward amount is non-positive or malformed."""

    def __init__(self, amount: Any, reason: str):
        super().__init__(
            f"Invalid reward amount {amount!r}: {reason}",
            {"amount": str(amount), "reason": reason}
        )


class InvalidConfidenceError(ValidationError):
    """Raised when a confidence score is outside [0, 1]."""

    def __init__(self, score: Any):
        super().__init__(
            f"Confidence score must be within [0, 1], got {score!r}",
            {"confidence_score": str(score)}
        )


class InvalidAddressError(ValidationError):
    """Raised when a ledger account address is malformed."""

    def __init__(self, address: Any):
        super().__init__(
            f"Invalid ledger address: {address!r}",
            {"address": str(address)}
        )


# Lookup exceptions
class DistributionNotFoundError(NotFoundError):
    """Raised when no distribution record exists for a receipt."""

    def __init__(self, receipt_id: str):
        super().__init__(
            f"Distribution not found for receipt: {receipt_id}",
            {"receipt_id": receipt_id}
        )


class ValidationTokenNotFoundError(NotFoundError):
    """Raised when no cached validation result can be resolved for a user."""

    def __init__(self, user_id: str, token: Optional[str] = None):
        super().__init__(
            f"No cached validation result for user {user_id}",
            {"user_id": user_id, "validation_token": token}
        )


# Ledger exceptions
class SubmissionError(LedgerError):
    """Raised when the ledger rejects or cannot accept a transfer."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "SUBMISSION_ERROR")


class LedgerUnavailableError(SubmissionError):
    """Raised when no configured Thor endpoint answers a probe."""

    def __init__(self, endpoints: list):
        super().__init__(
            f"No Thor endpoint reachable out of {len(endpoints)} configured",
            {"endpoints": list(endpoints)}
        )


class ReceiptTimeoutError(LedgerError):
    """Raised when no receipt is observed within the polling budget."""

    def __init__(self, tx_id: str, attempts: int):
        self.tx_id = tx_id
        self.attempts = attempts
        super().__init__(
            f"No receipt for transaction {tx_id} after {attempts} attempts",
            {"tx_id": tx_id, "attempts": attempts},
            "RECEIPT_TIMEOUT"
        )


class ReviewSinkError(ExternalServiceError):
    """Raised when a manual review ticket cannot be delivered."""

    def __init__(self, receipt_id: str, reason: str):
        super().__init__(
            f"Failed to emit review ticket for receipt {receipt_id}: {reason}",
            {"receipt_id": receipt_id, "reason": reason}
        )
