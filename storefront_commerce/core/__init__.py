"""
Core building blocks of the commerce pipeline.

- Domain exceptions and error codes
- Business transactions and result slots
- The sequential aggregate transaction runner
- Operation metrics and per-subscription locks
"""

from storefront_commerce.core.aggregate import (
    RollbackFailure,
    SequentialAggregateTransaction,
    TransactionState,
)
from storefront_commerce.core.exceptions import (
    CommerceDomainError,
    ErrorCode,
    ErrorKind,
    InvalidTransitionError,
    RepositoryError,
    ResultSlotEmptyError,
    SubscriptionProviderError,
    TransactionStepFailure,
    is_fatal,
)
from storefront_commerce.core.locks import SubscriptionLockRegistry
from storefront_commerce.core.transactions import BusinessTransaction, ResultSlot

__all__ = [
    "BusinessTransaction",
    "CommerceDomainError",
    "ErrorCode",
    "ErrorKind",
    "InvalidTransitionError",
    "RepositoryError",
    "ResultSlot",
    "ResultSlotEmptyError",
    "RollbackFailure",
    "SequentialAggregateTransaction",
    "SubscriptionLockRegistry",
    "SubscriptionProviderError",
    "TransactionState",
    "TransactionStepFailure",
    "is_fatal",
]
