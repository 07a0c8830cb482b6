"""In-memory transport for testing."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from ..models import StepChange
from .base import BaseTransport

RawMessage = Tuple[str, str, StepChange]


class InMemoryTransport(BaseTransport[RawMessage]):
    """Simple in-process queue for unit tests."""

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[RawMessage]] = defaultdict(deque)

    async def publish(self, topic: str, message: StepChange) -> None:
        """Publish message to in-memory queue."""
        self._queues[topic].append((topic, message.to_json(), message))

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessage, StepChange]]:
        """Subscribe to messages from topic.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep connection open. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time is not None:
                if loop.time() - start_time >= lifespan:
                    break

            if self._queues[topic]:
                raw_message = self._queues[topic].popleft()
                yield raw_message, raw_message[2]
                continue

            await asyncio.sleep(0.05)

    async def ack(self, raw_message: RawMessage) -> None:
        """No-op acknowledgment for in-memory transport."""
        pass

    async def nack(self, raw_message: RawMessage, requeue: bool = True) -> None:
        """Put the message back at the end of its queue when ``requeue``."""
        if requeue:
            self._queues[raw_message[0]].append(raw_message)

    def pending(self, topic: str) -> int:
        return len(self._queues[topic])
