"""Transport contract for delivering step change events to trigger workers.

Delivery is at-least-once. A ``TriggerWorker`` acks every event it handled
or decided to drop, and nacks with ``requeue=True`` when handling failed and
should be retried. A requeued event must come back with the same
``StepChange.event_id`` so the worker can count its redeliveries. Duplicate
delivery is harmless because promotions are conditional writes.
"""

from __future__ import annotations

import abc
from typing import AsyncIterator, Generic, Optional, Tuple, TypeVar

from ..models import StepChange

RawMessageT = TypeVar("RawMessageT")


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Queue of ``StepChange`` events keyed by topic."""

    async def connect(self) -> None:
        """Open the broker connection. Transports without one do nothing."""

    async def disconnect(self) -> None:
        """Close the broker connection. Transports without one do nothing."""

    @abc.abstractmethod
    async def publish(self, topic: str, message: StepChange) -> None:
        """Enqueue ``message`` on ``topic``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, StepChange]]:
        """Yield ``(raw_message, change)`` pairs from ``topic``.

        ``raw_message`` is what ``ack``/``nack`` need to settle the delivery.
        Iteration stops after ``lifespan`` seconds, or never when it is None.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Settle a delivery for good; the event is not seen again."""
        raise NotImplementedError

    @abc.abstractmethod
    async def nack(self, raw_message: RawMessageT, requeue: bool = True) -> None:
        """Settle a failed delivery.

        With ``requeue`` the unchanged event is delivered again later on the
        same topic; without it the event is discarded like ``ack``.
        """
        raise NotImplementedError
