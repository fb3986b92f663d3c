"""Dispatch loop — consumes inbound events, runs the pipeline, publishes replies.

Sits between the MessageBus (inbound side) and the DispatchPipeline:
    1. Event consumption from the bus
    2. One task per event, so a slow backend never blocks other users
    3. Replies published to the bus as soon as the pipeline yields them
"""

from __future__ import annotations

import asyncio

from loguru import logger

from relaybot.dispatch.pipeline import DispatchPipeline
from relaybot.handler.message_bus import MessageBus
from relaybot.handler.messages import InboundEvent


class DispatchLoop:
    """Main loop — bridges the MessageBus and the DispatchPipeline."""

    def __init__(self, message_bus: MessageBus, pipeline: DispatchPipeline) -> None:
        self.message_bus = message_bus
        self.pipeline = pipeline
        self._tasks: set[asyncio.Task] = set()

    async def run(self) -> None:
        """Main loop — runs forever as an asyncio task."""
        logger.info("DispatchLoop started — waiting for events")

        try:
            while True:
                event = await self.message_bus.consume_inbound()
                task = asyncio.create_task(
                    self.process(event),
                    name=f"dispatch-{event.channel.value}-{event.message_id}",
                )
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        finally:
            for task in list(self._tasks):
                task.cancel()

    async def process(self, event: InboundEvent) -> int:
        """Run one event through the pipeline; return how many replies went out.

        Any failure is logged and contained to this event.
        """
        sent = 0
        try:
            async for reply in self.pipeline.stream(event):
                await self.message_bus.publish_outbound(reply)
                sent += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Failed to process event {} from {}:{}",
                event.message_id,
                event.channel.value,
                event.user_id,
            )
        logger.debug("Event {} produced {} reply(ies)", event.message_id, sent)
        return sent

    @property
    def pending(self) -> int:
        """Number of events still being processed."""
        return len(self._tasks)
