"""Delivery of step change events to the completion listener."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from pydantic import ValidationError

from .constants import STEP_UPDATED_TOPIC
from .listener import CompletionListener
from .models import StepChange
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class ChangeSink(Protocol):
    async def emit(self, change: StepChange) -> None: ...


class LocalChangeSink:
    """Invoke the listener in-process for every change.

    The listener is bound after construction because it depends on the store
    that writes into this sink.
    """

    def __init__(self, listener: Optional[CompletionListener] = None) -> None:
        self.listener = listener

    def bind(self, listener: CompletionListener) -> None:
        self.listener = listener

    async def emit(self, change: StepChange) -> None:
        if self.listener is None:
            raise RuntimeError("LocalChangeSink has no listener bound")
        try:
            await self.listener.handle(change)
        except Exception:
            # The writer's own update already committed; the trigger failure
            # belongs to the trigger, not to the writer.
            logger.exception(f"Completion listener failed for step {change.step_id}")


class TransportChangeSink:
    """Publish changes on a transport topic for a ``TriggerWorker``."""

    def __init__(self, transport: BaseTransport, topic: str = STEP_UPDATED_TOPIC) -> None:
        self._transport = transport
        self._topic = topic

    async def emit(self, change: StepChange) -> None:
        await self._transport.publish(self._topic, change)


class TriggerWorker:
    """Consume step changes from a transport and feed the listener.

    Events the listener cannot read are acked and dropped. Other failures are
    requeued up to ``max_redeliveries`` times per event, then dropped.
    """

    def __init__(
        self,
        transport: BaseTransport,
        listener: CompletionListener,
        topic: str = STEP_UPDATED_TOPIC,
        max_redeliveries: int = 5,
    ) -> None:
        self._transport = transport
        self._listener = listener
        self._topic = topic
        self.max_redeliveries = max_redeliveries
        self._failures: Dict[str, int] = {}
        self.processed = 0
        self.dropped = 0

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Process events until ``lifespan`` seconds elapse (forever if None)."""
        async for raw_message, change in self._transport.subscribe(
            self._topic, lifespan=lifespan
        ):
            try:
                await self._listener.handle(change)
            except ValidationError as e:
                logger.error(f"Dropping unreadable change for step {change.step_id}: {e}")
                await self._drop(raw_message, change)
                continue
            except Exception:
                failures = self._failures.get(change.event_id, 0) + 1
                if failures > self.max_redeliveries:
                    logger.exception(
                        f"Giving up on change {change.event_id} for step {change.step_id} "
                        f"after {failures} attempts"
                    )
                    await self._drop(raw_message, change)
                    continue
                self._failures[change.event_id] = failures
                logger.exception(
                    f"Failed to process change for step {change.step_id}; requeueing"
                )
                await self._transport.nack(raw_message, requeue=True)
                continue
            self._failures.pop(change.event_id, None)
            await self._transport.ack(raw_message)
            self.processed += 1

    async def _drop(self, raw_message, change: StepChange) -> None:
        self._failures.pop(change.event_id, None)
        await self._transport.ack(raw_message)
        self.dropped += 1
