"""
Publish/subscribe for chat rooms.

Messages are published to a channel named after the chat id. Two brokers
implement the same interface: ``InMemoryBroker`` for a single process and
``RedisBroker`` when several API instances share one Redis server.
``RoomConnection`` tracks the rooms one WebSocket has joined and forwards
every published message to it until the room is left.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set

import redis.asyncio as redis
from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Subscription(ABC):
    """Async iterator over the messages published to one channel."""

    def __init__(self, channel: str):
        self.channel = channel
        self.closed = False
        # set when the subscriber fell too far behind and was dropped
        self.overflowed = False

    def __aiter__(self):
        return self

    @abstractmethod
    async def __anext__(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class Broker(ABC):
    @abstractmethod
    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def subscribe(self, channel: str) -> Subscription:
        ...

    async def close(self) -> None:
        pass


class QueueSubscription(Subscription):
    def __init__(self, broker: "InMemoryBroker", channel: str, maxsize: int = 0):
        super().__init__(channel)
        self.broker = broker
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def __anext__(self) -> Dict[str, Any]:
        if self.closed:
            raise StopAsyncIteration
        message = await self.queue.get()
        if message is None:
            raise StopAsyncIteration
        return message

    def overflow(self) -> None:
        logger.warning("Subscriber on %s fell behind, dropping it", self.channel)
        self.overflowed = True
        self.closed = True
        self.broker._discard(self)
        while not self.queue.empty():
            self.queue.get_nowait()
        # wakes a consumer blocked in __anext__
        self.queue.put_nowait(None)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.broker._discard(self)


class InMemoryBroker(Broker):
    def __init__(self, max_pending: int = 1000):
        self.max_pending = max_pending
        self.channels: Dict[str, Set[QueueSubscription]] = {}

    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        for sub in list(self.channels.get(channel, ())):
            try:
                sub.queue.put_nowait(message)
            except asyncio.QueueFull:
                sub.overflow()

    async def subscribe(self, channel: str) -> Subscription:
        sub = QueueSubscription(self, channel, maxsize=self.max_pending)
        self.channels.setdefault(channel, set()).add(sub)
        return sub

    def subscriber_count(self, channel: str) -> int:
        return len(self.channels.get(channel, ()))

    def _discard(self, sub: QueueSubscription) -> None:
        subs = self.channels.get(sub.channel)
        if subs is None:
            return
        subs.discard(sub)
        if not subs:
            del self.channels[sub.channel]


class RedisSubscription(Subscription):
    def __init__(self, pubsub, channel: str, key: str):
        super().__init__(channel)
        self.pubsub = pubsub
        self.key = key

    async def __anext__(self) -> Dict[str, Any]:
        while not self.closed:
            msg = await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if msg is not None:
                return json.loads(msg["data"])
        raise StopAsyncIteration

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.pubsub.unsubscribe(self.key)
        await self.pubsub.aclose()


class RedisBroker(Broker):
    prefix = "chat:"

    def __init__(self, url: str):
        self.redis = redis.from_url(url, decode_responses=True)

    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        await self.redis.publish(self.prefix + channel, json.dumps(message, default=str))

    async def subscribe(self, channel: str) -> Subscription:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(self.prefix + channel)
        return RedisSubscription(pubsub, channel, self.prefix + channel)

    async def close(self) -> None:
        await self.redis.aclose()


def create_broker(redis_url: Optional[str]) -> Broker:
    if redis_url:
        logger.info("Using Redis broker")
        return RedisBroker(redis_url)
    return InMemoryBroker()


def event(name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": name, "data": data}


class RoomConnection:
    """Rooms joined by a single WebSocket."""

    def __init__(self, websocket: WebSocket, broker: Broker):
        self.websocket = websocket
        self.broker = broker
        self.rooms: Dict[str, Subscription] = {}
        self.tasks: Dict[str, asyncio.Task] = {}

    async def join(self, chat_id: str) -> bool:
        if chat_id in self.rooms:
            return False
        sub = await self.broker.subscribe(chat_id)
        self.rooms[chat_id] = sub
        self.tasks[chat_id] = asyncio.create_task(self._forward(sub))
        return True

    async def leave(self, chat_id: str) -> bool:
        sub = self.rooms.pop(chat_id, None)
        if sub is None:
            return False
        task = self.tasks.pop(chat_id)
        task.cancel()
        await sub.close()
        return True

    async def close_all(self) -> None:
        for chat_id in list(self.rooms):
            await self.leave(chat_id)

    async def send(self, name: str, data: Dict[str, Any]) -> None:
        await self.websocket.send_json(event(name, data))

    async def _forward(self, sub: Subscription) -> None:
        try:
            async for message in sub:
                await self.send("message", message)
            if sub.overflowed and self.rooms.get(sub.channel) is sub:
                self.rooms.pop(sub.channel)
                self.tasks.pop(sub.channel, None)
                await self.send("error", {"detail": "Too many pending messages, rejoin the chat", "chatId": sub.channel})
        except Exception:
            logger.exception("Forwarding to room %s stopped", sub.channel)
