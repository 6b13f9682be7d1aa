"""
Collaborator contracts consumed by the poll scheduler, plus in-process
implementations good enough to run the engine standalone.
"""
from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Protocol, runtime_checkable

import httpx

from shared.models.domain import Subscription, TrackedBet
from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

logger = get_logger(__name__)


# ── Contracts ───────────────────────────────────────────────────────────
@runtime_checkable
class BetStore(Protocol):
    async def list_active_bets(self) -> list[TrackedBet]: ...

    async def list_subscriptions(self, bet_id: str) -> list[Subscription]: ...


@runtime_checkable
class NotificationSink(Protocol):
    async def send(self, subscription: Subscription, subject: str, message: str) -> None:
        """Deliver one message; raising signals a failed delivery."""
        ...


@runtime_checkable
class PubSubBus(Protocol):
    async def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


# ── Bet store ───────────────────────────────────────────────────────────
class InMemoryBetStore:
    """Process-local bets and notification subscriptions."""

    def __init__(self) -> None:
        self._bets: dict[str, TrackedBet] = {}
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)

    async def add_bet(self, bet: TrackedBet) -> None:
        self._bets[bet.id] = bet

    async def remove_bet(self, bet_id: str) -> None:
        self._bets.pop(bet_id, None)
        self._subscriptions.pop(bet_id, None)

    async def list_active_bets(self) -> list[TrackedBet]:
        return [b for b in self._bets.values() if not b.status.is_terminal]

    async def add_subscription(self, subscription: Subscription) -> None:
        self._subscriptions[subscription.bet_id].append(subscription)

    async def list_subscriptions(self, bet_id: str) -> list[Subscription]:
        return list(self._subscriptions.get(bet_id, ()))


# ── Notification sinks ──────────────────────────────────────────────────
class LogNotificationSink:
    """Writes notifications to the structured log."""

    async def send(self, subscription: Subscription, subject: str, message: str) -> None:
        logger.info(
            "notification_logged",
            bet_id=subscription.bet_id,
            target=subscription.target or None,
            subject=subject,
            message=message,
        )


class WebhookNotificationSink:
    """POSTs `{bet_id, subject, message}` as JSON to the subscription target URL."""

    def __init__(
        self,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=5.0),
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, subscription: Subscription, subject: str, message: str) -> None:
        if not subscription.target:
            raise ValueError(f"webhook subscription for bet {subscription.bet_id} has no target")
        if self._client is None:
            await self.start()
        resp = await self._client.post(
            subscription.target,
            json={"bet_id": subscription.bet_id, "subject": subject, "message": message},
        )
        resp.raise_for_status()


# ── Pub/Sub ─────────────────────────────────────────────────────────────
class InMemoryBus:
    """Fans each published payload out to per-subscriber asyncio queues."""

    def __init__(self, maxsize: int = 100) -> None:
        self._maxsize = maxsize
        self._queues: dict[str, list[asyncio.Queue]] = defaultdict(list)

    def subscribe(self, topic: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._queues[topic].append(queue)
        return queue

    def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        queues = self._queues.get(topic, [])
        if queue in queues:
            queues.remove(queue)

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        for queue in list(self._queues.get(topic, ())):
            if queue.full():
                # Slow consumer: drop its oldest payload.
                queue.get_nowait()
                logger.warning("bus_queue_overflow", topic=topic)
            queue.put_nowait(payload)


class RedisBus:
    """Publishes JSON payloads on a Redis channel named after the topic."""

    def __init__(self, redis: RedisManager) -> None:
        self._redis = redis

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        receivers = await self._redis.publish_json(topic, payload)
        logger.debug("bus_published", topic=topic, receivers=receivers)
