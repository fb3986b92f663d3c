# roles: build channels from config, run the outbound side of the bus, resolve inbound media.

import asyncio
from pathlib import Path

from loguru import logger

from relaybot.config import AppConfig, get_config
from relaybot.errors import AdapterFailure
from relaybot.handler.channels.base import BaseChannelHandler
from relaybot.handler.channels.telegram import TelegramChannelHandler
from relaybot.handler.channels.whatsapp import WhatsAppChannelHandler
from relaybot.handler.message_bus import MessageBus
from relaybot.handler.messages import MediaRef

CHANNEL_TYPES: dict[str, type[BaseChannelHandler]] = {
    "telegram": TelegramChannelHandler,
    "whatsapp": WhatsAppChannelHandler,
}


class CommunicationHandler:
    """Owns the Telegram / WhatsApp channel handlers and their shared bus.

    Channels publish inbound events straight onto the bus; this class
    subscribes each channel's ``send_message`` for its own replies, runs the
    outbound dispatch task, and serves as the pipeline's ``MediaResolver``.
    Channels are keyed by type, which is also the bus routing key.
    """

    def __init__(
        self,
        message_bus: MessageBus | None = None,
        config: AppConfig | None = None,
    ):
        self._config = config or get_config()
        self.message_bus = message_bus or MessageBus()
        self.channels: dict[str, BaseChannelHandler] = {}
        self._outbound_task: asyncio.Task | None = None

        self._build_channels()

    def _build_channels(self):
        server = self._config.server

        for name, cfg in self._config.get_enabled_channels().items():
            channel_cls = CHANNEL_TYPES.get(cfg.type)
            if channel_cls is None:
                logger.warning(f"Channel '{name}' has unsupported type '{cfg.type}'; skipped")
                continue
            if not cfg.token:
                logger.warning(f"Channel '{name}' has no token (is it set in .env?); skipped")
                continue

            self.channels[cfg.type] = channel_cls(
                bus=self.message_bus,
                token=cfg.token,
                media_dir=server.resolved_media_dir,
                public_url=server.public_url,
                config=cfg.extra,
                inbox_dir=server.resolved_inbox_dir,
            )
            logger.info(f"Channel '{name}' ready ({cfg.type})")

    def get_channel(self, name: str) -> BaseChannelHandler | None:
        return self.channels.get(name)

    async def fetch_media(self, ref: MediaRef) -> Path:
        """Download inbound media through the channel that produced it."""
        channel = self.channels.get(ref.channel.value)
        if channel is None:
            raise AdapterFailure("media", f"No channel registered for {ref.channel.value}")
        return await channel.fetch_media(ref)

    async def start(self):
        for channel_type, channel in self.channels.items():
            await channel.connect()
            await self.message_bus.subscribe_outbound(channel_type, channel.send_message)

        self._outbound_task = asyncio.create_task(
            self.message_bus.dispatch_outbound(), name="outbound-dispatch"
        )
        logger.info(f"CommunicationHandler running {sorted(self.channels) or 'no channels'}")

    async def stop(self):
        self.message_bus.stop()
        if self._outbound_task is not None:
            self._outbound_task.cancel()
            self._outbound_task = None

        for channel in self.channels.values():
            await channel.disconnect()
        logger.info("CommunicationHandler stopped")
