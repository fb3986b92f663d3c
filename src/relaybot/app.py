"""Process entry point: wires the bot together and runs it until signalled.

    channels ──inbound──▶ MessageBus ──▶ DispatchLoop ──▶ DispatchPipeline
    channels ◀─outbound── MessageBus ◀──────────────────────────┘
    webhook server (FastAPI/uvicorn) ──▶ channels
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys

import uvicorn
from loguru import logger

from relaybot.config import AppConfig, get_config
from relaybot.dispatch.loop import DispatchLoop
from relaybot.dispatch.pipeline import DispatchPipeline
from relaybot.handler.handler import CommunicationHandler
from relaybot.handler.message_bus import MessageBus
from relaybot.handler.session.session import ContextStore
from relaybot.providers.audio import OpenAIAudioProvider
from relaybot.providers.image import StabilityImageProvider
from relaybot.providers.llm import CompletionService, create_llm_provider
from relaybot.server import create_app


def configure_logging(level: str) -> None:
    """Route loguru output to stderr at ``level``."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


class Application:
    """Builds every component from one AppConfig and runs them together."""

    def __init__(self, config: AppConfig | None = None) -> None:
        self._config = config or get_config()
        media_dir = self._config.server.resolved_media_dir

        self.message_bus = MessageBus()
        self.context_store = ContextStore(max_history=self._config.agent.max_history)
        self.handler = CommunicationHandler(
            message_bus=self.message_bus, config=self._config
        )

        audio = OpenAIAudioProvider(self._config.audio, media_dir)
        self.pipeline = DispatchPipeline(
            store=self.context_store,
            completion=CompletionService(
                llm=create_llm_provider(self._config),
                defaults=self._config.agent.defaults,
                system_prompt=self._config.agent.system_prompt,
            ),
            images=StabilityImageProvider(self._config.image, media_dir),
            speech_to_text=audio,
            text_to_speech=audio,
            media=self.handler,
        )
        self.dispatch_loop = DispatchLoop(self.message_bus, self.pipeline)

        self.web_app = create_app(self.handler, media_dir)
        self._stop_requested = asyncio.Event()

    async def start(self) -> None:
        """Run channels, dispatch and the webhook server until SIGINT/SIGTERM."""
        logger.info("relaybot starting")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._request_stop)

        await self.handler.start()
        dispatch_task = asyncio.create_task(self.dispatch_loop.run(), name="dispatch-loop")

        server = uvicorn.Server(
            uvicorn.Config(
                self.web_app,
                host=self._config.server.host,
                port=self._config.server.port,
                log_level=self._config.log_level.lower(),
            )
        )
        # signals are handled by the loop handlers installed above
        server.install_signal_handlers = lambda: None
        server.capture_signals = contextlib.nullcontext
        server_task = asyncio.create_task(server.serve(), name="webhook-server")

        logger.info(
            "Webhook server on {}:{}; Ctrl+C to stop",
            self._config.server.host,
            self._config.server.port,
        )
        await self._stop_requested.wait()

        logger.info("Stopping relaybot")
        server.should_exit = True
        await server_task

        dispatch_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await dispatch_task

        await self.handler.stop()
        logger.info("relaybot stopped")

    def _request_stop(self) -> None:
        logger.info("Stop signal received")
        self._stop_requested.set()

    def run(self) -> None:
        asyncio.run(self.start())


def main() -> None:
    config = get_config()
    configure_logging(config.log_level)
    Application(config).run()


if __name__ == "__main__":
    main()
