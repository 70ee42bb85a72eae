"""
Redis Pub/Sub publisher for scrape completion events.

Notifies downstream consumers when a run has finished writing its CSV.
Connections are pooled per publisher and publishing is retried on transient
Redis errors.

Usage:
    async with RedisPublisher() as publisher:
        await publisher.publish_event(settings.REDIS_CHANNEL_SCRAPED, event)
"""

import logging
from typing import Any, Optional

import orjson
import redis.asyncio as redis
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from utils.config import settings
from utils.schemas import ScrapeEvent

logger = logging.getLogger(__name__)


class RedisPublisher:
    """Pooled Redis publisher with retried publishes."""

    def __init__(self, redis_url: Optional[str] = None) -> None:
        """Initialize Redis publisher.

        Args:
            redis_url: Redis connection URL, defaults to settings.REDIS_URL
        """
        self.redis_url = redis_url or settings.REDIS_URL
        self.client: Optional[redis.Redis] = None

    async def __aenter__(self) -> "RedisPublisher":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        if self.client is None:
            self.client = redis.from_url(
                self.redis_url,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                decode_responses=False,  # payloads are orjson bytes
            )

    @retry(
        retry=retry_if_exception_type((redis.ConnectionError, redis.TimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def publish(self, channel: str, message: dict[str, Any]) -> int:
        """Publish a JSON message to a channel.

        Args:
            channel: Redis channel name
            message: Payload dict, serialized with orjson

        Returns:
            Number of subscribers that received the message

        Raises:
            redis.RedisError: If publishing still fails after 3 attempts
        """
        if self.client is None:
            await self.connect()
        return await self.client.publish(channel, orjson.dumps(message))

    async def publish_event(self, channel: str, event: ScrapeEvent) -> int:
        receivers = await self.publish(channel, event.to_message())
        logger.debug(
            "Published event",
            extra={"channel": channel, "message_type": event.type, "receivers": receivers},
        )
        return receivers

    async def close(self) -> None:
        """Close Redis connection and cleanup resources."""
        if self.client:
            await self.client.aclose()
            self.client = None
