"""Tests for CommunicationHandler wiring and MessageBus outbound dispatch."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from relaybot.config import AppConfig, ChannelConfig, _parse_config
from relaybot.errors import AdapterFailure
from relaybot.handler.channels.telegram import TelegramChannelHandler
from relaybot.handler.channels.whatsapp import WhatsAppChannelHandler
from relaybot.handler.handler import CommunicationHandler
from relaybot.handler.message_bus import MessageBus
from relaybot.handler.messages import Channel, MediaRef, OutboundReply, TextMessage


def _config(tmp_path, **channels):
    base = _parse_config({"server": {"media_dir": str(tmp_path)}})
    return AppConfig(
        agent=base.agent,
        providers={},
        channels=channels,
        server=base.server,
    )


class TestRegistration:
    def test_enabled_channels_with_tokens(self, tmp_path):
        config = _config(
            tmp_path,
            telegram=ChannelConfig(name="telegram", type="telegram", enabled=True, token="t"),
            whatsapp=ChannelConfig(
                name="whatsapp", type="whatsapp", enabled=True, token="w",
                extra={"phone_number_id": "1"},
            ),
        )
        handler = CommunicationHandler(message_bus=MessageBus(), config=config)

        assert isinstance(handler.get_channel("telegram"), TelegramChannelHandler)
        assert isinstance(handler.get_channel("whatsapp"), WhatsAppChannelHandler)

    def test_skips_disabled_tokenless_and_unknown(self, tmp_path):
        config = _config(
            tmp_path,
            telegram=ChannelConfig(name="telegram", type="telegram", enabled=False, token="t"),
            whatsapp=ChannelConfig(name="whatsapp", type="whatsapp", enabled=True, token=None),
            signal=ChannelConfig(name="signal", type="signal", enabled=True, token="s"),
        )
        handler = CommunicationHandler(message_bus=MessageBus(), config=config)
        assert handler.channels == {}


class TestFetchMedia:
    @pytest.mark.asyncio
    async def test_routes_to_owning_channel(self, tmp_path):
        handler = CommunicationHandler(message_bus=MessageBus(), config=_config(tmp_path))
        channel = AsyncMock()
        channel.fetch_media = AsyncMock(return_value=tmp_path / "voice.ogg")
        handler.channels["whatsapp"] = channel

        ref = MediaRef(Channel.WHATSAPP, "media-1")
        assert await handler.fetch_media(ref) == tmp_path / "voice.ogg"
        channel.fetch_media.assert_awaited_once_with(ref)

    @pytest.mark.asyncio
    async def test_unknown_channel_is_adapter_failure(self, tmp_path):
        handler = CommunicationHandler(message_bus=MessageBus(), config=_config(tmp_path))
        with pytest.raises(AdapterFailure):
            await handler.fetch_media(MediaRef(Channel.TELEGRAM, "f"))


class TestOutboundDispatch:
    @pytest.mark.asyncio
    async def test_replies_reach_their_channel(self):
        bus = MessageBus()
        telegram = AsyncMock()
        whatsapp = AsyncMock()
        await bus.subscribe_outbound("telegram", telegram)
        await bus.subscribe_outbound("whatsapp", whatsapp)

        task = asyncio.create_task(bus.dispatch_outbound())
        reply = OutboundReply(channel=Channel.WHATSAPP, user_id="1", payload=TextMessage("hi"))
        await bus.publish_outbound(reply)
        for _ in range(50):
            if whatsapp.await_count:
                break
            await asyncio.sleep(0.01)
        bus.stop()
        task.cancel()

        whatsapp.assert_awaited_once_with(reply)
        telegram.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_stop_dispatch(self):
        bus = MessageBus()
        callback = AsyncMock(side_effect=[RuntimeError("send failed"), None])
        await bus.subscribe_outbound("telegram", callback)

        task = asyncio.create_task(bus.dispatch_outbound())
        for text in ("one", "two"):
            await bus.publish_outbound(
                OutboundReply(channel=Channel.TELEGRAM, user_id="1", payload=TextMessage(text))
            )
        for _ in range(50):
            if callback.await_count == 2:
                break
            await asyncio.sleep(0.01)
        bus.stop()
        task.cancel()

        assert callback.await_count == 2
