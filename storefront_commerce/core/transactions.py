"""
Business transaction abstraction for the commerce pipeline.

A business transaction is one externally visible effect (charging a card,
placing an order with the provider, writing a ledger row) that knows how to
compensate itself. Transactions are assembled in order and run by
``SequentialAggregateTransaction``; when a later one fails, the ones that
already executed are rolled back in reverse order.

Outputs flow between steps through ``ResultSlot`` boxes: the producing step
fills its slot when it executes and later steps read the slot only when they
execute themselves.

Example:
    >>> authorization = AuthorizePayment(gateway, Decimal("30.00"))
    >>> capture = CapturePayment(gateway, authorization.authorization_code)
    >>> await authorization.execute()
    >>> await capture.execute()  # reads the code filled by the first step
"""

import logging
from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

from storefront_commerce.core.exceptions import ResultSlotEmptyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResultSlot(Generic[T]):
    """
    Single assignment box holding the output of a step.

    Attributes:
        name: Slot name used in logs and errors.
    """

    def __init__(self, name: str):
        self.name = name
        self._value: Optional[T] = None
        self._filled = False

    @property
    def is_filled(self) -> bool:
        return self._filled

    def set(self, value: T) -> None:
        """
        Fill the slot.

        Raises:
            RuntimeError: If the slot was already filled.
        """
        if self._filled:
            raise RuntimeError(f"Result slot '{self.name}' is already filled")
        self._value = value
        self._filled = True

    def get(self) -> T:
        """
        Read the slot value.

        Raises:
            ResultSlotEmptyError: If the producing step has not executed.
        """
        if not self._filled:
            raise ResultSlotEmptyError(self.name)
        return self._value

    def __repr__(self) -> str:
        state = "filled" if self._filled else "empty"
        return f"ResultSlot({self.name!r}, {state})"


class BusinessTransaction(ABC):
    """
    Abstract base class for compensable commerce steps.

    Subclasses implement ``execute()`` and mark ``executed = True`` once the
    external effect happened. ``rollback()`` defaults to a logged no-op for
    steps that have no natural inverse; steps that can compensate override it.

    Attributes:
        executed: True once execute() completed successfully.
    """

    def __init__(self):
        self.executed = False

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def execute(self) -> None:
        """
        Perform the external effect.

        Raises:
            Exception: Any failure from the collaborator. Steps do not retry.
        """
        pass

    async def rollback(self) -> None:
        """
        Compensate the effect of execute().

        Must be safe to call when execute() never ran or failed, and must not
        raise for non-fatal problems.
        """
        if not self.executed:
            logger.debug(f"{self.name} rollback skipped: never executed")
            return

        logger.info(f"{self.name} has no compensating action, nothing to roll back")

    def __repr__(self) -> str:
        return f"<{self.name} executed={self.executed}>"
