"""
Sequential aggregate transaction.

Runs an ordered list of business transactions as one logical unit. Steps
execute strictly in insertion order; when one fails the runner stops and
reports the failure, and the caller decides when to call ``rollback()``,
which compensates the executed steps in reverse order.

The runner never rolls back on its own so that the caller keeps control over
what happens between the failure and the compensation.

Example:
    >>> aggregate = (SequentialAggregateTransaction()
    ...     .add_transaction(authorize)
    ...     .add_transaction(place_order)
    ...     .add_transaction(capture))
    >>> try:
    ...     await aggregate.execute()
    ... except TransactionStepFailure:
    ...     await aggregate.rollback()
    ...     raise
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from storefront_commerce.core.exceptions import (
    InvalidTransitionError,
    TransactionStepFailure,
    is_fatal,
)
from storefront_commerce.core.transactions import BusinessTransaction

logger = logging.getLogger(__name__)


class TransactionState(str, Enum):
    """Lifecycle of an aggregate transaction."""
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class RollbackFailure:
    """A step whose rollback raised. Reported, never re-raised (except a cancellation)."""
    step_name: str
    step_index: int
    error: BaseException


class SequentialAggregateTransaction:
    """
    Executes business transactions in order with reverse-order rollback.

    Attributes:
        transactions: Steps to execute, in order.
        executed_transactions: Steps whose execute() succeeded, in order.
        rollback_failures: Steps whose rollback() raised during the last unwind.
        state: Current TransactionState.
    """

    def __init__(self, transactions: Optional[Iterable[BusinessTransaction]] = None):
        self.transactions: List[BusinessTransaction] = list(transactions or [])
        self.executed_transactions: List[BusinessTransaction] = []
        self.rollback_failures: List[RollbackFailure] = []
        self.state = TransactionState.PENDING

        logger.debug(
            f"SequentialAggregateTransaction initialized with {len(self.transactions)} steps"
        )

    def add_transaction(self, transaction: BusinessTransaction) -> "SequentialAggregateTransaction":
        """
        Append a step (fluent interface).

        Raises:
            InvalidTransitionError: If the aggregate already started.
        """
        if self.state != TransactionState.PENDING:
            raise InvalidTransitionError(self.state, TransactionState.PENDING)

        self.transactions.append(transaction)
        logger.debug(
            f"📋 Step added to aggregate: {transaction.name} "
            f"(total: {len(self.transactions)})"
        )
        return self

    async def execute(self) -> None:
        """
        Execute every step in order.

        Stops at the first failing step. Fatal errors propagate untouched;
        every other failure, cancellation included, is wrapped in
        TransactionStepFailure.

        Raises:
            TransactionStepFailure: A step failed. Executed steps are NOT rolled back.
            InvalidTransitionError: The aggregate was already executed.
        """
        if self.state != TransactionState.PENDING:
            raise InvalidTransitionError(self.state, TransactionState.EXECUTING)

        self.state = TransactionState.EXECUTING
        total = len(self.transactions)
        logger.info(f"🚀 Starting aggregate transaction with {total} steps")

        for index, transaction in enumerate(self.transactions):
            logger.info(f"⚙️ Executing step {index + 1}/{total}: {transaction.name}")

            try:
                await transaction.execute()
            except BaseException as error:
                self.state = TransactionState.FAILED
                if is_fatal(error):
                    logger.critical(
                        f"💥 Fatal error in step {index + 1}/{total}: {transaction.name}"
                    )
                    raise

                logger.error(
                    f"❌ Aggregate failed at step {index + 1}/{total}: "
                    f"{transaction.name} - {error}"
                )
                raise TransactionStepFailure(
                    transaction.name,
                    index,
                    error,
                    completed_steps=[t.name for t in self.executed_transactions],
                ) from error

            self.executed_transactions.append(transaction)
            logger.info(f"✅ Step {index + 1}/{total} completed: {transaction.name}")

        self.state = TransactionState.COMPLETED
        logger.info(f"🎉 Aggregate transaction completed ({total} steps executed)")

    async def rollback(self) -> List[RollbackFailure]:
        """
        Roll back executed steps in reverse order.

        Best effort: a step whose rollback raises is logged and recorded in
        ``rollback_failures`` and the unwind continues. A cancellation received
        during the unwind is re-raised once every step was compensated. A fatal
        error stops the unwind and propagates.

        Returns:
            The rollback failures recorded during this unwind.

        Raises:
            InvalidTransitionError: The aggregate is running or completed.
        """
        if self.state in (TransactionState.PENDING, TransactionState.ROLLED_BACK):
            logger.debug(f"Rollback skipped, aggregate is {self.state.value}")
            return []

        if self.state != TransactionState.FAILED:
            raise InvalidTransitionError(self.state, TransactionState.ROLLING_BACK)

        self.state = TransactionState.ROLLING_BACK
        self.rollback_failures = []
        cancellation: Optional[asyncio.CancelledError] = None

        if not self.executed_transactions:
            logger.warning("⚠️ No executed steps to roll back")

        logger.info(
            f"🔄 Rolling back {len(self.executed_transactions)} executed steps "
            f"(in reverse order)..."
        )

        for index in reversed(range(len(self.executed_transactions))):
            transaction = self.executed_transactions[index]

            try:
                logger.info(f"↩️ Rolling back step {index + 1}: {transaction.name}")
                await transaction.rollback()
            except BaseException as error:
                if is_fatal(error):
                    logger.critical(
                        f"💥 Fatal error rolling back {transaction.name}, abandoning rollback"
                    )
                    raise

                logger.error(
                    f"⚠️ Rollback FAILED for step {index + 1}: {transaction.name} - {error}. "
                    f"Manual cleanup may be required."
                )
                self.rollback_failures.append(RollbackFailure(transaction.name, index, error))
                if isinstance(error, asyncio.CancelledError):
                    cancellation = error

        self.state = TransactionState.ROLLED_BACK
        logger.info("🏁 Rollback process completed")
        if cancellation is not None:
            raise cancellation
        return list(self.rollback_failures)

    def get_status(self) -> Dict[str, Any]:
        """Diagnostic snapshot of the aggregate."""
        return {
            "state": self.state.value,
            "total_steps": len(self.transactions),
            "executed_steps": len(self.executed_transactions),
            "pending_steps": len(self.transactions) - len(self.executed_transactions),
            "step_names": [t.name for t in self.transactions],
            "executed_names": [t.name for t in self.executed_transactions],
            "rollback_failures": [f.step_name for f in self.rollback_failures],
        }
