"""
Outbound write queue for placeholder and canonical event writes.

Messages are plain JSON objects (``UPSERT_MIRROR`` / ``DELETE_MIRROR``)
carrying an ``idempotency_key``; consumers deliver at least once, so the
key is what makes redelivery safe.
"""

import json
from typing import Any, Protocol

import redis.asyncio as redis

from app.config import Settings, settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class WriteQueue(Protocol):
    async def send_batch(self, messages: list[dict[str, Any]]) -> None: ...


class WriteQueueError(Exception):
    """Enqueueing a batch of write messages failed."""


class RedisWriteQueue:
    """Redis list used as a FIFO queue; one batch is one pipelined RPUSH."""

    def __init__(self, client: redis.Redis, queue_key: str = "write-queue"):
        self.client = client
        self.queue_key = queue_key

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "RedisWriteQueue":
        client = redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=10,
            socket_timeout=10,
            health_check_interval=30,
        )
        return cls(client, queue_key=config.WRITE_QUEUE_KEY)

    async def close(self) -> None:
        await self.client.aclose()

    async def send_batch(self, messages: list[dict[str, Any]]) -> None:
        if not messages:
            return

        try:
            async with self.client.pipeline(transaction=True) as pipe:
                for message in messages:
                    pipe.rpush(self.queue_key, json.dumps(message))
                await pipe.execute()
        except redis.RedisError as e:
            logger.error(
                "Write queue batch failed",
                queue=self.queue_key,
                message_count=len(messages),
                error=str(e),
            )
            raise WriteQueueError(f"Failed to enqueue {len(messages)} write messages") from e

        logger.debug("Write queue batch sent", queue=self.queue_key, message_count=len(messages))
