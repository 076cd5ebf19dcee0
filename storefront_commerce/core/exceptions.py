"""Domain exceptions for storefront-commerce."""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional


class RepositoryError(Exception):
    """Error in a persistence repository operation."""
    pass


class InvalidTransitionError(Exception):
    """Error on an invalid state transition."""

    def __init__(self, from_state, to_state):
        super().__init__(f"Invalid transition from {from_state} to {to_state}")
        self.from_state = from_state
        self.to_state = to_state


class ResultSlotEmptyError(LookupError):
    """A step output was read before the producing step executed."""

    def __init__(self, slot_name: str):
        super().__init__(f"Result slot '{slot_name}' has not been filled yet")
        self.slot_name = slot_name


class ErrorKind(str, Enum):
    """Broad family of a domain error."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    BUSINESS_RULE = "business_rule"
    PAYMENT_GATEWAY = "payment_gateway"
    SERVER = "server"


class ErrorCode(str, Enum):
    """Stable, machine readable codes carried by CommerceDomainError."""
    SERVER_ERROR = "ServerError"
    INVALID_INPUT = "InvalidInput"
    PARTNER_OFFER_NOT_FOUND = "PartnerOfferNotFound"
    SUBSCRIPTION_NOT_FOUND = "SubscriptionNotFound"
    PURCHASE_DELETED_OFFER_NOT_ALLOWED = "PurchaseDeletedOfferNotAllowed"
    SUBSCRIPTION_EXPIRED = "SubscriptionExpired"
    CARD_REFUSED = "CardRefused"
    CARD_EXPIRED = "CardExpired"
    CARD_CVN_CHECK_FAILED = "CardCVNCheckFailed"
    PAYMENT_GATEWAY_PAYMENT_ERROR = "PaymentGatewayPaymentError"
    PAYMENT_GATEWAY_FAILURE = "PaymentGatewayFailure"
    PAYMENT_GATEWAY_IDENTITY_FAILURE_DURING_PAYMENT = "PaymentGatewayIdentityFailureDuringPayment"
    PAYMENT_GATEWAY_IDENTITY_FAILURE_DURING_CONFIGURATION = (
        "PaymentGatewayIdentityFailureDuringConfiguration"
    )

    @property
    def kind(self) -> ErrorKind:
        return _ERROR_KINDS.get(self, ErrorKind.SERVER)

    @property
    def requires_alternate_card(self) -> bool:
        """True when the customer can fix the failure by using another card."""
        return self in _ALTERNATE_CARD_CODES


_ERROR_KINDS = {
    ErrorCode.INVALID_INPUT: ErrorKind.VALIDATION,
    ErrorCode.PARTNER_OFFER_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.SUBSCRIPTION_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.PURCHASE_DELETED_OFFER_NOT_ALLOWED: ErrorKind.BUSINESS_RULE,
    ErrorCode.SUBSCRIPTION_EXPIRED: ErrorKind.BUSINESS_RULE,
    ErrorCode.CARD_REFUSED: ErrorKind.PAYMENT_GATEWAY,
    ErrorCode.CARD_EXPIRED: ErrorKind.PAYMENT_GATEWAY,
    ErrorCode.CARD_CVN_CHECK_FAILED: ErrorKind.PAYMENT_GATEWAY,
    ErrorCode.PAYMENT_GATEWAY_PAYMENT_ERROR: ErrorKind.PAYMENT_GATEWAY,
    ErrorCode.PAYMENT_GATEWAY_FAILURE: ErrorKind.PAYMENT_GATEWAY,
    ErrorCode.PAYMENT_GATEWAY_IDENTITY_FAILURE_DURING_PAYMENT: ErrorKind.PAYMENT_GATEWAY,
    ErrorCode.PAYMENT_GATEWAY_IDENTITY_FAILURE_DURING_CONFIGURATION: ErrorKind.PAYMENT_GATEWAY,
}

_ALTERNATE_CARD_CODES = frozenset({
    ErrorCode.CARD_REFUSED,
    ErrorCode.CARD_EXPIRED,
    ErrorCode.CARD_CVN_CHECK_FAILED,
    ErrorCode.PAYMENT_GATEWAY_PAYMENT_ERROR,
})


class CommerceDomainError(Exception):
    """
    Business error raised by the commerce layer.

    Callers render a message from ``error_code`` and ``details`` instead of
    parsing the exception text.

    Attributes:
        error_code: Stable code describing what happened.
        details: Free form key/value details (e.g. the offending offer id).
    """

    def __init__(self, error_code: ErrorCode = ErrorCode.SERVER_ERROR, message: Optional[str] = None):
        super().__init__(message or error_code.value)
        self.error_code = error_code
        self.details: Dict[str, Any] = {}

    @property
    def kind(self) -> ErrorKind:
        return self.error_code.kind

    def add_detail(self, key: str, value: Any) -> "CommerceDomainError":
        """Attach a detail and return self so it can be raised inline."""
        self.details[key] = value
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code.value,
            "kind": self.kind.value,
            "message": str(self),
            "details": dict(self.details),
        }

    def __repr__(self) -> str:
        return f"CommerceDomainError({self.error_code.value!r}, details={self.details!r})"


class SubscriptionProviderError(Exception):
    """Error returned by the subscription provisioning API."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}

    @property
    def is_transient(self) -> bool:
        """Transport failures and 5xx responses."""
        return self.status_code is None or self.status_code >= 500


class TransactionStepFailure(Exception):
    """
    Raised by the aggregate runner when one of its steps fails.

    Attributes:
        step_name: Class name of the step that failed.
        step_index: 0-based position of the failed step.
        completed_steps: Names of the steps that executed before the failure.
        cause: The exception raised by the step.
    """

    def __init__(
        self,
        step_name: str,
        step_index: int,
        cause: BaseException,
        completed_steps: Optional[List[str]] = None,
    ):
        super().__init__(f"Transaction step {step_index + 1} ({step_name}) failed: {cause}")
        self.step_name = step_name
        self.step_index = step_index
        self.cause = cause
        self.completed_steps = completed_steps or []


# Errors that mean the process itself is in trouble. Everything that is not an
# Exception subclass (interpreter exit, keyboard interrupt) is fatal as well,
# except task cancellation: a cancelled request still has to compensate.
FATAL_ERRORS = (MemoryError, SystemError)


def is_fatal(error: BaseException) -> bool:
    """True when ``error`` must never be rolled back, retried or swallowed."""
    if isinstance(error, asyncio.CancelledError):
        return False
    return not isinstance(error, Exception) or isinstance(error, FATAL_ERRORS)
