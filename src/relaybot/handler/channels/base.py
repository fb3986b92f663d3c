# channel: connect/disconnect, normalize inbound payloads, send replies, resolve media

from __future__ import annotations

import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from relaybot.handler.message_bus import MessageBus

from relaybot.constants import INBOX_DIR_PREFIX, MEDIA_URL_PATH
from relaybot.errors import AdapterFailure
from relaybot.handler.messages import Command, InboundEvent, MediaRef, OutboundReply, Text
from relaybot.providers.media import media_path

# "/name@bot argument", the argument may start on the next line
_COMMAND_RE = re.compile(r"^/([^\s@]+)(?:@\S*)?(?:\s+(.*))?$", re.DOTALL)


def parse_text(text: str) -> Command | Text:
    """``/name[@bot] argument`` → Command, anything else → Text."""
    match = _COMMAND_RE.match(text)
    if match is None:
        return Text(body=text)
    name, argument = match.groups()
    return Command(name=name.lower(), argument=(argument or "").strip())


class BaseChannelHandler(ABC):
    name: str = "base"

    def __init__(
        self,
        bus: MessageBus,
        media_dir: Path,
        public_url: str = "",
        config: dict | None = None,
        inbox_dir: Path | None = None,
    ):
        self._running = False
        self._bus = bus
        self._media_dir = media_dir
        self._inbox_dir = inbox_dir
        self._public_url = public_url.rstrip("/")
        self._config = config or {}

    @abstractmethod
    async def connect(self):
        """Establish connection to the channel."""
        pass

    @abstractmethod
    async def disconnect(self):
        """Terminate connection to the channel."""
        pass

    @abstractmethod
    def normalize(self, raw: Any) -> InboundEvent | None:
        """Convert a raw platform payload to an InboundEvent.

        Returns None when the payload carries no actionable message
        (delivery receipts, status updates, unsupported types).
        """
        pass

    @abstractmethod
    async def send_message(self, reply: OutboundReply):
        """Deliver a reply; transport errors are logged, not raised."""
        pass

    @abstractmethod
    async def fetch_media(self, ref: MediaRef) -> Path:
        """Download inbound media into the private inbox; raise AdapterFailure on error.

        The caller owns the returned file and deletes it when done.
        """
        pass

    async def _publish_inbound(self, event: InboundEvent):
        """Publish a normalized inbound event to the bus."""
        logger.debug(
            "Inbound {} {} from {}",
            self.name,
            type(event.kind).__name__,
            event.user_id,
        )
        await self._bus.publish_inbound(event)

    # ------------------------------------------------------------------
    # Inbound media (user uploads, never served over HTTP)
    # ------------------------------------------------------------------

    def inbox_path(self, filename: str) -> Path:
        """Path for a downloaded user upload, outside the public media dir."""
        if self._inbox_dir is None:
            self._inbox_dir = Path(tempfile.mkdtemp(prefix=INBOX_DIR_PREFIX))
        self._inbox_dir.mkdir(parents=True, exist_ok=True)
        return self._inbox_dir / filename

    # ------------------------------------------------------------------
    # Media refs produced by backends
    # ------------------------------------------------------------------

    def local_media(self, ref: str) -> Path:
        """Path of a backend-produced media file."""
        return media_path(self._media_dir, ref)

    def media_url(self, ref: str) -> str:
        """Public URL the platform can fetch a backend-produced file from."""
        if not self._public_url:
            raise AdapterFailure(
                "send", f"server.public_url is not configured; cannot link {ref}"
            )
        return f"{self._public_url}{MEDIA_URL_PATH}/{ref}"

    @property
    def is_running(self) -> bool:
        """Return True if the handler is running, False otherwise."""
        return self._running
