"""Redis pub/sub transport for row change events."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import TYPE_CHECKING, Optional, Union

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from checklist.errors import RemoteStoreError
from checklist.models import ChangeEvent

if TYPE_CHECKING:  # pragma: no cover - type check helper
    from redis.asyncio.client import PubSub

    from checklist.store import ChangeHandler

logger = logging.getLogger(__name__)


def decode_event(data: Union[str, bytes, None]) -> Optional[ChangeEvent]:
    """Parse a published payload; malformed payloads are logged and dropped."""
    if not data:
        return None
    try:
        return ChangeEvent.model_validate_json(data)
    except ValidationError as exc:
        logger.warning("Discarding malformed change event: %s", exc)
        return None


class RedisSubscription:
    """One channel subscription with its own reader task."""

    def __init__(self, channel: str, pubsub: "PubSub", handler: "ChangeHandler") -> None:
        self.channel = channel
        self._pubsub = pubsub
        self._handler = handler
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._task = asyncio.create_task(self._read(), name=f"changefeed:{self.channel}")

    async def _read(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                event = decode_event(message.get("data"))
                if event is None:
                    continue
                try:
                    self._handler(event)
                except Exception:
                    logger.exception("Change handler failed on %s", self.channel)
        except RedisError as exc:
            # Reconnect policy is left to the operator; views keep working via explicit refresh.
            logger.error("Change feed on %s disconnected: %s", self.channel, exc)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        try:
            await self._pubsub.unsubscribe(self.channel)
        except RedisError as exc:
            logger.debug("Unsubscribe from %s failed: %s", self.channel, exc)
        await self._pubsub.aclose()
        logger.debug("Closed change feed subscription %s", self.channel)


class RedisChangeFeed:
    """Publishes and listens for ChangeEvents on one channel per table."""

    def __init__(
        self,
        redis_url: str,
        *,
        channel_prefix: str = "checklist:changes",
        client: Optional[Redis] = None,
    ) -> None:
        self._client = client if client is not None else Redis.from_url(redis_url, decode_responses=True)
        self._channel_prefix = channel_prefix

    def channel_for(self, table: str) -> str:
        return f"{self._channel_prefix}:{table}"

    async def publish(self, event: ChangeEvent) -> None:
        channel = self.channel_for(event.table)
        try:
            await self._client.publish(channel, event.model_dump_json())
        except RedisError as exc:
            raise RemoteStoreError(
                f"Failed to publish change on {channel}: {exc}",
                table=event.table,
                operation="publish",
            ) from exc

    async def subscribe(self, table: str, handler: "ChangeHandler") -> RedisSubscription:
        channel = self.channel_for(table)
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(channel)
        except RedisError as exc:
            await pubsub.aclose()
            raise RemoteStoreError(
                f"Failed to subscribe to {channel}: {exc}",
                table=table,
                operation="subscribe",
            ) from exc

        subscription = RedisSubscription(channel, pubsub, handler)
        subscription.start()
        logger.info("Listening for changes on %s", channel)
        return subscription

    async def close(self) -> None:
        await self._client.aclose()
