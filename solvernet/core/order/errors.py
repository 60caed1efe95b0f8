"""
Order Error Classification

Error types raised by order components. The orchestrator converts them into
``OrderFailure`` records so callers only ever observe state, never exceptions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of order errors."""

    INPUT_INVALID = "input_invalid"             # Bad amount/address, fix input
    QUOTE_FAILED = "quote_failed"               # Quote service/network failure
    APPROVAL_REJECTED = "approval_rejected"     # User declined the approval
    APPROVAL_FAILED = "approval_failed"         # Wallet/chain approval failure
    VALIDATION_REJECTED = "validation_rejected"  # Order service business rule
    NETWORK_MISMATCH = "network_mismatch"       # Wallet on the wrong chain
    SUBMISSION_REJECTED = "submission_rejected"  # User cancelled submission
    SUBMISSION_FAILED = "submission_failed"     # Any other submission failure
    ABI_LOOKUP = "abi_lookup"                   # Explorer could not supply an ABI
    UNKNOWN = "unknown"


@dataclass
class OrderFailure:
    """Human-readable failure attached to a blocking or terminal state."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    message: str = ""
    recoverable: bool = True
    suggested_action: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "suggestedAction": self.suggested_action,
            "details": self.details,
        }


class OrderError(Exception):
    """Base class for order component errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    suggested_action: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        suggested_action: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if suggested_action is not None:
            self.suggested_action = suggested_action

    def to_failure(self) -> OrderFailure:
        return OrderFailure(
            category=self.category,
            message=self.message,
            recoverable=self.recoverable,
            suggested_action=self.suggested_action,
            details=dict(self.details),
        )


class InputInvalid(OrderError):
    """Amount or address input cannot be used."""

    category = ErrorCategory.INPUT_INVALID
    suggested_action = "Correct the highlighted input"


class UnknownChain(InputInvalid):
    """Chain is not registered in the asset catalog."""

    def __init__(self, chain_id: Any):
        super().__init__(
            f"Chain {chain_id} is not supported",
            details={"chain_id": chain_id},
            suggested_action="Pick one of the supported chains",
        )
        self.chain_id = chain_id


class InvalidAddress(InputInvalid):
    """Address fails format/checksum validation."""

    def __init__(self, address: str, field_name: str = "address"):
        super().__init__(
            f"Invalid {field_name}: {address!r}",
            details={"address": address, "field": field_name},
        )
        self.address = address


class InvalidArgument(InputInvalid):
    """A contract call argument is missing or cannot be coerced."""

    def __init__(self, name: str, arg_type: str, raw: Optional[str], reason: str):
        super().__init__(
            f"Argument {name!r} ({arg_type}): {reason}",
            details={"name": name, "type": arg_type, "raw": raw, "reason": reason},
        )
        self.name = name
        self.arg_type = arg_type
        self.raw = raw
        self.reason = reason


class QuoteFailed(OrderError):
    category = ErrorCategory.QUOTE_FAILED
    suggested_action = "Try again or change the amount"


class ApprovalRejected(OrderError):
    category = ErrorCategory.APPROVAL_REJECTED
    suggested_action = "Approve the token in your wallet to continue"


class ApprovalFailed(OrderError):
    category = ErrorCategory.APPROVAL_FAILED
    suggested_action = "Check your wallet and try approving again"


class ValidationRejected(OrderError):
    """Order service refused the order configuration."""

    category = ErrorCategory.VALIDATION_REJECTED
    recoverable = False
    suggested_action = "Adjust the order and start a new attempt"


class NetworkMismatch(OrderError):
    category = ErrorCategory.NETWORK_MISMATCH
    suggested_action = "Switch your wallet to the source chain"


class SubmissionRejected(OrderError):
    category = ErrorCategory.SUBMISSION_REJECTED
    recoverable = False
    suggested_action = "Start a new attempt when ready"


class SubmissionFailed(OrderError):
    category = ErrorCategory.SUBMISSION_FAILED
    recoverable = False
    suggested_action = "Start a new attempt"


class AbiLookupError(OrderError):
    """Explorer did not return a usable ABI."""

    category = ErrorCategory.ABI_LOOKUP
    suggested_action = "Verify the contract address and chain, then try again"


class AbiUnavailable(AbiLookupError):
    """Explorer answered but holds no ABI (unverified contract or missing API key)."""


class AbiRateLimited(AbiUnavailable):
    suggested_action = "Wait a few seconds before looking up the contract again"


class UnknownError(OrderError):
    category = ErrorCategory.UNKNOWN
    suggested_action = "Reconnect your wallet and try again"


# Wallets signal user cancellation with EIP-1193 code 4001 and a handful of
# well-known messages.
USER_REJECTION_CODE = 4001
_USER_REJECTION_PATTERNS = (
    "user rejected",
    "user denied",
    "rejected by user",
    "user cancelled",
    "user canceled",
    "request rejected",
)


def is_user_rejection(error: BaseException) -> bool:
    """Return True when a wallet error means the user declined the request."""

    code = getattr(error, "code", None)
    if code == USER_REJECTION_CODE:
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in _USER_REJECTION_PATTERNS)


def failure_from_exception(error: BaseException) -> OrderFailure:
    """Turn any exception into an ``OrderFailure``; unknown ones surface verbatim."""

    if isinstance(error, OrderError):
        return error.to_failure()
    return UnknownError(str(error) or error.__class__.__name__).to_failure()


__all__ = [
    "ErrorCategory",
    "OrderFailure",
    "OrderError",
    "InputInvalid",
    "UnknownChain",
    "InvalidAddress",
    "InvalidArgument",
    "QuoteFailed",
    "ApprovalRejected",
    "ApprovalFailed",
    "ValidationRejected",
    "NetworkMismatch",
    "SubmissionRejected",
    "SubmissionFailed",
    "AbiLookupError",
    "AbiUnavailable",
    "AbiRateLimited",
    "UnknownError",
    "USER_REJECTION_CODE",
    "is_user_rejection",
    "failure_from_exception",
]
