"""Integration tests for DispatchLoop — bus → pipeline → bus."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from relaybot.dispatch.loop import DispatchLoop
from relaybot.handler.message_bus import MessageBus
from relaybot.handler.messages import Channel, EphemeralStatus, ImageMessage, TextMessage

from conftest import command_event, text_event


@pytest.fixture
def bus():
    return MessageBus()


@pytest.fixture
def loop(bus, pipeline):
    return DispatchLoop(bus, pipeline)


class TestProcess:
    @pytest.mark.asyncio
    async def test_text_reply_published(self, loop, bus):
        sent = await loop.process(text_event("hello"))

        assert sent == 1
        reply = bus.outbound.get_nowait()
        assert reply.payload == TextMessage("reply 1", reply_to_message_id="100")

    @pytest.mark.asyncio
    async def test_image_replies_published_in_order(self, loop, bus):
        sent = await loop.process(command_event("imagine", "a red fox"))

        assert sent == 2
        first = bus.outbound.get_nowait()
        second = bus.outbound.get_nowait()
        assert first.ephemeral_status is EphemeralStatus.EPHEMERAL
        assert isinstance(second.payload, ImageMessage)
        assert second.ephemeral_status is EphemeralStatus.SUPERSEDE

    @pytest.mark.asyncio
    async def test_pipeline_crash_is_contained(self, bus):
        pipeline = AsyncMock()

        async def boom(event):
            raise RuntimeError("unexpected")
            yield  # pragma: no cover

        pipeline.stream = boom
        loop = DispatchLoop(bus, pipeline)

        assert await loop.process(text_event("hi")) == 0
        assert bus.outbound_size == 0


class TestRun:
    @pytest.mark.asyncio
    async def test_consumes_events_from_bus(self, loop, bus):
        task = asyncio.create_task(loop.run())
        await bus.publish_inbound(text_event("one", user_id="1"))
        await bus.publish_inbound(text_event("two", user_id="2", channel=Channel.WHATSAPP))

        reply_a = await asyncio.wait_for(bus.consume_outbound(), timeout=1)
        reply_b = await asyncio.wait_for(bus.consume_outbound(), timeout=1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert {reply_a.user_id, reply_b.user_id} == {"1", "2"}
        assert {reply_a.channel, reply_b.channel} == {Channel.TELEGRAM, Channel.WHATSAPP}

    @pytest.mark.asyncio
    async def test_slow_event_does_not_block_others(self, bus, pipeline, images):
        release = asyncio.Event()

        async def slow_image(prompt):
            await release.wait()
            return ["image_x.png"]

        images.text_to_image.side_effect = slow_image
        loop = DispatchLoop(bus, pipeline)
        task = asyncio.create_task(loop.run())

        await bus.publish_inbound(command_event("imagine", "a fox", user_id="slow"))
        await bus.publish_inbound(text_event("hi", user_id="fast"))

        # placeholder for the slow user, then the fast user's reply
        seen = [await asyncio.wait_for(bus.consume_outbound(), timeout=1) for _ in range(2)]
        assert {r.user_id for r in seen} == {"slow", "fast"}
        await asyncio.sleep(0.05)
        assert loop.pending == 1  # only the image task is still waiting

        release.set()
        final = await asyncio.wait_for(bus.consume_outbound(), timeout=1)
        assert final.user_id == "slow"
        assert isinstance(final.payload, ImageMessage)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
