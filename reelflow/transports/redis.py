"""Redis transport for cross-process change delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Tuple

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from pydantic import ValidationError

from ..models import StepChange
from .base import BaseTransport

logger = logging.getLogger(__name__)

RawMessage = Tuple[str, str]


class RedisTransport(BaseTransport[RawMessage]):
    """Redis-based transport using lists as queues."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "reelflow",
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisTransport")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self._redis: Optional[Any] = None

    def _queue_name(self, topic: str) -> str:
        return f"{self.prefix}:{topic}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, message: StepChange) -> None:
        """Publish message to Redis list (acting as queue)."""
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self._queue_name(topic), message.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessage, StepChange]]:
        """Subscribe to messages from Redis queue."""
        if not self._redis:
            await self.connect()

        queue_name = self._queue_name(topic)
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time is not None:
                if loop.time() - start_time >= lifespan:
                    break

            result = await self._redis.brpop(queue_name, timeout=1)
            if result:
                _, message_json = result
                try:
                    message = StepChange.from_json(message_json)
                except ValidationError as e:
                    logger.error(f"Dropping unparsable change event on {queue_name}: {e}")
                    continue
                yield (topic, message_json), message

    async def ack(self, raw_message: RawMessage) -> None:
        """No-op acknowledgment for Redis transport (message already consumed)."""
        pass

    async def nack(self, raw_message: RawMessage, requeue: bool = True) -> None:
        """Push the message back onto its queue for redelivery."""
        if requeue:
            topic, message_json = raw_message
            await self._redis.lpush(self._queue_name(topic), message_json)
