import asyncio
from asyncio import Queue
from collections.abc import Awaitable, Callable

from loguru import logger

from .messages import InboundEvent, OutboundReply

OutboundCallback = Callable[[OutboundReply], Awaitable[None]]


class MessageBus:
    def __init__(self) -> None:
        self.inbound: Queue[InboundEvent] = Queue()
        self.outbound: Queue[OutboundReply] = Queue()
        self._outbound_subscribers: dict[str, list[OutboundCallback]] = {}
        self._running = False

    async def publish_inbound(self, event: InboundEvent):
        """Publish an inbound event to the bus."""
        await self.inbound.put(event)

    async def consume_inbound(self) -> InboundEvent:
        """Consume an inbound event from the bus."""
        return await self.inbound.get()

    async def publish_outbound(self, reply: OutboundReply):
        """Queue an outbound reply for dispatch to its channel."""
        await self.outbound.put(reply)

    # not used directly, rather dispatch_outbound is used to send replies to channels
    async def consume_outbound(self) -> OutboundReply:
        """Consume an outbound reply from the bus."""
        return await self.outbound.get()

    async def subscribe_outbound(self, channel: str, callback: OutboundCallback):
        """Subscribe to outbound replies for a specific channel."""
        if channel not in self._outbound_subscribers:
            self._outbound_subscribers[channel] = []
        self._outbound_subscribers[channel].append(callback)

    async def dispatch_outbound(self) -> None:
        """
        Dispatch outbound replies to subscribed channels.
        Run this as a background task.

        Send failures are logged and dropped; they are never retried.
        """
        self._running = True
        while self._running:
            try:
                reply = await asyncio.wait_for(self.outbound.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            subscribers = self._outbound_subscribers.get(reply.channel.value, [])
            if not subscribers:
                logger.warning("No subscriber for channel {}; reply dropped", reply.channel.value)
            for callback in subscribers:
                try:
                    await callback(reply)
                except Exception as e:
                    logger.error(f"Error dispatching to {reply.channel.value}: {e}")

    def stop(self):
        """Stop the message bus."""
        self._running = False

    @property
    def inbound_size(self) -> int:
        """Return the number of events in the inbound queue."""
        return self.inbound.qsize()

    @property
    def outbound_size(self) -> int:
        """Return the number of replies in the outbound queue."""
        return self.outbound.qsize()
