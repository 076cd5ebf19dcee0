"""
Unit tests for the sequential aggregate transaction runner.
"""

import asyncio

import pytest

from storefront_commerce.core.aggregate import (
    SequentialAggregateTransaction,
    TransactionState,
)
from storefront_commerce.core.exceptions import InvalidTransitionError, TransactionStepFailure
from storefront_commerce.core.transactions import BusinessTransaction


class Abort(BaseException):
    """Stands in for interpreter level interruptions."""


class RecordingTransaction(BusinessTransaction):
    """Step appending its lifecycle events to a shared journal."""

    def __init__(self, label, journal, fail_with=None, rollback_fails_with=None):
        super().__init__()
        self.label = label
        self.journal = journal
        self.fail_with = fail_with
        self.rollback_fails_with = rollback_fails_with

    @property
    def name(self):
        return self.label

    async def execute(self):
        self.journal.append(f"execute:{self.label}")
        if self.fail_with is not None:
            raise self.fail_with
        self.executed = True

    async def rollback(self):
        self.journal.append(f"rollback:{self.label}")
        if self.rollback_fails_with is not None:
            raise self.rollback_fails_with


def build(journal, *steps):
    aggregate = SequentialAggregateTransaction()
    for step in steps:
        aggregate.add_transaction(step)
    return aggregate


class TestAggregateCreation:
    """Tests for building an aggregate."""

    def test_initialization(self):
        """Starts empty and pending."""
        aggregate = SequentialAggregateTransaction()

        assert aggregate.transactions == []
        assert aggregate.executed_transactions == []
        assert aggregate.state == TransactionState.PENDING

    def test_add_transaction_is_fluent(self):
        """add_transaction returns the aggregate so calls can be chained."""
        journal = []
        aggregate = SequentialAggregateTransaction()

        result = aggregate.add_transaction(RecordingTransaction("a", journal)).add_transaction(
            RecordingTransaction("b", journal)
        )

        assert result is aggregate
        assert [t.name for t in aggregate.transactions] == ["a", "b"]

    def test_accepts_initial_transactions(self):
        journal = []
        aggregate = SequentialAggregateTransaction(
            [RecordingTransaction("a", journal), RecordingTransaction("b", journal)]
        )

        assert len(aggregate.transactions) == 2

    @pytest.mark.asyncio
    async def test_add_after_execution_is_rejected(self):
        """Steps cannot be added once the aggregate ran."""
        journal = []
        aggregate = build(journal, RecordingTransaction("a", journal))
        await aggregate.execute()

        with pytest.raises(InvalidTransitionError):
            aggregate.add_transaction(RecordingTransaction("late", journal))


class TestAggregateExecution:
    """Tests for execute()."""

    @pytest.mark.asyncio
    async def test_executes_in_insertion_order(self):
        journal = []
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal),
            RecordingTransaction("c", journal),
        )

        await aggregate.execute()

        assert journal == ["execute:a", "execute:b", "execute:c"]
        assert aggregate.state == TransactionState.COMPLETED
        assert [t.name for t in aggregate.executed_transactions] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_failure_stops_and_wraps_cause(self):
        """A failing step stops the run and is reported with its position."""
        journal = []
        cause = RuntimeError("provider down")
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal, fail_with=cause),
            RecordingTransaction("c", journal),
        )

        with pytest.raises(TransactionStepFailure) as exc_info:
            await aggregate.execute()

        failure = exc_info.value
        assert failure.cause is cause
        assert failure.__cause__ is cause
        assert failure.step_name == "b"
        assert failure.step_index == 1
        assert failure.completed_steps == ["a"]
        assert journal == ["execute:a", "execute:b"]
        assert aggregate.state == TransactionState.FAILED

    @pytest.mark.asyncio
    async def test_does_not_roll_back_by_itself(self):
        """Compensation is left to the caller."""
        journal = []
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal, fail_with=ValueError("boom")),
        )

        with pytest.raises(TransactionStepFailure):
            await aggregate.execute()

        assert "rollback:a" not in journal

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fatal", [MemoryError(), SystemError(), Abort()])
    async def test_fatal_errors_propagate_unwrapped(self, fatal):
        journal = []
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal, fail_with=fatal),
        )

        with pytest.raises(type(fatal)):
            await aggregate.execute()

        assert aggregate.state == TransactionState.FAILED

    @pytest.mark.asyncio
    async def test_cancelled_step_is_wrapped(self):
        journal = []
        cancelled = asyncio.CancelledError()
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal, fail_with=cancelled),
        )

        with pytest.raises(TransactionStepFailure) as exc_info:
            await aggregate.execute()

        assert exc_info.value.cause is cancelled
        assert exc_info.value.step_name == "b"
        assert aggregate.state == TransactionState.FAILED

    @pytest.mark.asyncio
    async def test_execute_twice_is_rejected(self):
        journal = []
        aggregate = build(journal, RecordingTransaction("a", journal))
        await aggregate.execute()

        with pytest.raises(InvalidTransitionError):
            await aggregate.execute()

    @pytest.mark.asyncio
    async def test_empty_aggregate_completes(self):
        aggregate = SequentialAggregateTransaction()

        await aggregate.execute()

        assert aggregate.state == TransactionState.COMPLETED


class TestAggregateRollback:
    """Tests for rollback()."""

    @pytest.mark.asyncio
    async def test_rolls_back_executed_steps_in_reverse(self):
        """Only executed steps are compensated, last first."""
        journal = []
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal),
            RecordingTransaction("c", journal, fail_with=RuntimeError("boom")),
            RecordingTransaction("d", journal),
        )
        with pytest.raises(TransactionStepFailure):
            await aggregate.execute()

        failures = await aggregate.rollback()

        assert failures == []
        assert journal[-2:] == ["rollback:b", "rollback:a"]
        assert "rollback:c" not in journal
        assert "rollback:d" not in journal
        assert aggregate.state == TransactionState.ROLLED_BACK

    @pytest.mark.asyncio
    async def test_rollback_failure_is_recorded_and_unwind_continues(self):
        journal = []
        broken = RuntimeError("void failed")
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal, rollback_fails_with=broken),
            RecordingTransaction("c", journal, fail_with=RuntimeError("boom")),
        )
        with pytest.raises(TransactionStepFailure):
            await aggregate.execute()

        failures = await aggregate.rollback()

        assert [f.step_name for f in failures] == ["b"]
        assert failures[0].error is broken
        assert failures[0].step_index == 1
        assert journal[-2:] == ["rollback:b", "rollback:a"]
        assert aggregate.rollback_failures == failures

    @pytest.mark.asyncio
    async def test_fatal_rollback_error_abandons_unwind(self):
        journal = []
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal, rollback_fails_with=MemoryError()),
            RecordingTransaction("c", journal, fail_with=RuntimeError("boom")),
        )
        with pytest.raises(TransactionStepFailure):
            await aggregate.execute()

        with pytest.raises(MemoryError):
            await aggregate.rollback()

        assert "rollback:a" not in journal

    @pytest.mark.asyncio
    async def test_cancelled_rollback_finishes_unwind_then_reraises(self):
        journal = []
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal, rollback_fails_with=asyncio.CancelledError()),
            RecordingTransaction("c", journal, fail_with=RuntimeError("boom")),
        )
        with pytest.raises(TransactionStepFailure):
            await aggregate.execute()

        with pytest.raises(asyncio.CancelledError):
            await aggregate.rollback()

        assert journal[-2:] == ["rollback:b", "rollback:a"]
        assert [f.step_name for f in aggregate.rollback_failures] == ["b"]
        assert aggregate.state == TransactionState.ROLLED_BACK

    @pytest.mark.asyncio
    async def test_rollback_when_pending_is_noop(self):
        journal = []
        aggregate = build(journal, RecordingTransaction("a", journal))

        assert await aggregate.rollback() == []
        assert journal == []
        assert aggregate.state == TransactionState.PENDING

    @pytest.mark.asyncio
    async def test_rollback_after_completion_is_rejected(self):
        journal = []
        aggregate = build(journal, RecordingTransaction("a", journal))
        await aggregate.execute()

        with pytest.raises(InvalidTransitionError):
            await aggregate.rollback()

    @pytest.mark.asyncio
    async def test_second_rollback_is_noop(self):
        journal = []
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal, fail_with=RuntimeError("boom")),
        )
        with pytest.raises(TransactionStepFailure):
            await aggregate.execute()
        await aggregate.rollback()

        await aggregate.rollback()

        assert journal.count("rollback:a") == 1


class TestAggregateStatus:
    """Tests for get_status()."""

    @pytest.mark.asyncio
    async def test_status_after_failure(self):
        journal = []
        aggregate = build(
            journal,
            RecordingTransaction("a", journal),
            RecordingTransaction("b", journal, fail_with=RuntimeError("boom")),
        )
        with pytest.raises(TransactionStepFailure):
            await aggregate.execute()

        status = aggregate.get_status()

        assert status["state"] == "failed"
        assert status["total_steps"] == 2
        assert status["executed_steps"] == 1
        assert status["pending_steps"] == 1
        assert status["step_names"] == ["a", "b"]
        assert status["executed_names"] == ["a"]
