"""WhatsApp channel handler — WhatsApp Cloud API over the Graph REST API.

Inbound messages arrive through the webhook (see ``relaybot.server``);
this handler normalizes them, marks them as read, and sends replies with
``POST /{phone_number_id}/messages``. Generated media is sent by link, so
``server.public_url`` must point at the webhook server's ``/media`` mount.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from relaybot.constants import (
    MEDIA_DOWNLOAD_TIMEOUT,
    VOICE_FILE_EXTENSION,
    WHATSAPP_API_VERSION,
    WHATSAPP_BUTTON_TITLE_MAX,
    WHATSAPP_GRAPH_URL,
    WHATSAPP_LIST_BUTTON_TEXT,
    WHATSAPP_MAX_BUTTONS,
    WHATSAPP_ROW_TITLE_MAX,
    WHATSAPP_TIMEOUT,
)
from relaybot.errors import AdapterFailure, WebhookVerificationError
from relaybot.handler.message_bus import MessageBus
from relaybot.handler.messages import (
    AudioMessage,
    Channel,
    ImageMessage,
    InboundEvent,
    Interactive,
    MediaRef,
    MenuMessage,
    OutboundReply,
    TextMessage,
    Voice,
)

from .base import BaseChannelHandler, parse_text

_MIME_SUFFIXES = {
    "audio/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "audio/aac": ".aac",
    "audio/amr": ".amr",
}


class WhatsAppChannelHandler(BaseChannelHandler):
    """WhatsApp Cloud API channel handler.

    Responsibilities:
        - Answer the webhook subscription challenge
        - Turn webhook payloads into InboundEvents (text, audio, interactive)
        - Mark inbound messages as read
        - Send text, image, audio and interactive menu replies
        - Download inbound audio for transcription
    """

    name = "whatsapp"

    def __init__(
        self,
        bus: MessageBus,
        token: str,
        media_dir: Path,
        public_url: str = "",
        config: dict | None = None,
        inbox_dir: Path | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            bus: MessageBus instance for publishing inbound events.
            token: Cloud API access token.
            media_dir: Directory of generated media (served at /media).
            public_url: Public base URL serving ``/media``.
            config: Channel config (``phone_number_id``, ``verify_token``,
                    ``api_version``).
            inbox_dir: Private directory for downloaded voice notes
                       (a fresh temp dir when omitted).
            client: Pre-built HTTP client (tests inject a mock transport).
        """
        super().__init__(bus, media_dir, public_url, config, inbox_dir)
        self._token = token
        self._phone_number_id = str(self._config.get("phone_number_id") or "")
        self._verify_token = self._config.get("verify_token")
        api_version = self._config.get("api_version", WHATSAPP_API_VERSION)
        self._base_url = f"{WHATSAPP_GRAPH_URL}/{api_version}"
        self._client = client
        self._owns_client = client is None

    # ------------------------------------------------------------------
    # BaseChannelHandler interface
    # ------------------------------------------------------------------

    async def connect(self):
        """Create the Graph API client (inbound traffic arrives via webhook)."""
        if self._running:
            return
        if not self._phone_number_id:
            logger.warning("WhatsApp phone_number_id is not configured; sends will fail")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"Authorization": f"Bearer {self._token}"},
                timeout=WHATSAPP_TIMEOUT,
            )
        self._running = True
        logger.info("WhatsApp channel connected (webhook)")

    async def disconnect(self):
        if not self._running:
            return
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        self._running = False
        logger.info("WhatsApp channel disconnected")

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    def verify_webhook(
        self, mode: str | None, token: str | None, challenge: str | None
    ) -> str:
        """Answer the GET subscription challenge.

        Returns:
            The challenge string to echo back.

        Raises:
            WebhookVerificationError: parameters missing or token mismatch.
        """
        logger.info(f"Received verification request - Mode: {mode}")

        if not mode or not token:
            logger.error("Missing mode or token in verification request")
            raise WebhookVerificationError("Error: Missing Parameters")

        if mode == "subscribe" and self._verify_token and token == self._verify_token:
            logger.info("Webhook verified successfully")
            return challenge or ""

        logger.error("Webhook verification failed - Token mismatch or invalid mode")
        raise WebhookVerificationError("Error: Token Mismatch")

    async def handle_webhook(self, payload: dict) -> InboundEvent | None:
        """Process one POSTed webhook payload: mark read, normalize, publish."""
        message = self._first_message(payload)
        if message is None:
            logger.debug("No messages in the WhatsApp request")
            return None

        if message.get("id"):
            await self.mark_as_read(message["id"])

        event = self.normalize(payload)
        if event is None:
            logger.info(f"Ignoring unsupported WhatsApp message type: {message.get('type')}")
            return None

        await self._publish_inbound(event)
        return event

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    @staticmethod
    def _first_value(payload: dict) -> dict:
        try:
            return payload["entry"][0]["changes"][0]["value"] or {}
        except (KeyError, IndexError, TypeError):
            return {}

    @classmethod
    def _first_message(cls, payload: dict) -> dict | None:
        messages = cls._first_value(payload).get("messages")
        return messages[0] if messages else None

    def normalize(self, raw: Any) -> InboundEvent | None:
        value = self._first_value(raw)
        messages = value.get("messages")
        if not messages:
            return None

        message = messages[0]
        sender = message.get("from")
        message_id = message.get("id")
        if not sender or not message_id:
            return None

        kind = self._parse_kind(message)
        if kind is None:
            return None

        contacts = value.get("contacts") or [{}]
        display_name = (contacts[0].get("profile") or {}).get("name")

        extra = {}
        if str(message.get("timestamp", "")).isdigit():
            extra["timestamp"] = float(message["timestamp"])

        return InboundEvent(
            channel=Channel.WHATSAPP,
            user_id=sender,
            message_id=message_id,
            kind=kind,
            display_name=display_name,
            **extra,
        )

    @staticmethod
    def _parse_kind(message: dict):
        msg_type = message.get("type")

        if msg_type == "text":
            body = (message.get("text") or {}).get("body")
            return parse_text(body) if body else None

        if msg_type == "audio":
            audio = message.get("audio") or {}
            if not audio.get("id"):
                return None
            return Voice(
                MediaRef(
                    channel=Channel.WHATSAPP,
                    handle=audio["id"],
                    mime_type=audio.get("mime_type"),
                )
            )

        if msg_type == "interactive":
            interactive = message.get("interactive") or {}
            reply = interactive.get("button_reply") or interactive.get("list_reply")
            if not reply or not reply.get("id"):
                return None
            return Interactive(
                selection_id=reply["id"],
                selection_label=reply.get("title") or reply["id"],
            )

        if msg_type == "button":
            # Quick-reply button on a template message
            button = message.get("button") or {}
            payload = button.get("payload") or button.get("text")
            if not payload:
                return None
            return Interactive(selection_id=payload, selection_label=button.get("text") or payload)

        return None

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def mark_as_read(self, message_id: str):
        await self._post_message(
            {"messaging_product": "whatsapp", "status": "read", "message_id": message_id}
        )

    async def send_message(self, reply: OutboundReply):
        """Send a reply; placeholders are plain messages (the API cannot edit)."""
        try:
            payload = self.build_payload(reply)
        except AdapterFailure as exc:
            logger.error(f"Cannot build WhatsApp reply for {reply.user_id}: {exc}")
            return

        if await self._post_message(payload):
            logger.debug(f"Sent {type(reply.payload).__name__} to {reply.user_id}")

    def build_payload(self, reply: OutboundReply) -> dict:
        """Translate an OutboundReply into a Cloud API ``messages`` body."""
        body: dict = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": reply.chat_id,
        }
        payload = reply.payload
        reply_to = None

        if isinstance(payload, TextMessage):
            body["type"] = "text"
            body["text"] = {"preview_url": False, "body": payload.body}
            reply_to = payload.reply_to_message_id
        elif isinstance(payload, ImageMessage):
            body["type"] = "image"
            body["image"] = {
                "link": self.media_url(payload.image_ref),
                "caption": payload.caption,
            }
        elif isinstance(payload, AudioMessage):
            body["type"] = "audio"
            body["audio"] = {"link": self.media_url(payload.audio_ref)}
            reply_to = payload.reply_to_message_id
        elif isinstance(payload, MenuMessage):
            body["type"] = "interactive"
            body["interactive"] = self._interactive(payload)

        if reply_to:
            body["context"] = {"message_id": reply_to}
        return body

    @staticmethod
    def _interactive(menu: MenuMessage) -> dict:
        """Reply buttons for small menus, a list message otherwise."""
        if len(menu.options) <= WHATSAPP_MAX_BUTTONS:
            return {
                "type": "button",
                "body": {"text": menu.body},
                "action": {
                    "buttons": [
                        {
                            "type": "reply",
                            "reply": {
                                "id": option.id,
                                "title": option.label[:WHATSAPP_BUTTON_TITLE_MAX],
                            },
                        }
                        for option in menu.options
                    ]
                },
            }
        return {
            "type": "list",
            "body": {"text": menu.body},
            "action": {
                "button": WHATSAPP_LIST_BUTTON_TEXT,
                "sections": [
                    {
                        "title": WHATSAPP_LIST_BUTTON_TEXT,
                        "rows": [
                            {"id": option.id, "title": option.label[:WHATSAPP_ROW_TITLE_MAX]}
                            for option in menu.options
                        ],
                    }
                ],
            },
        }

    async def _post_message(self, body: dict) -> bool:
        if self._client is None:
            raise RuntimeError("Cannot send message: handler is not connected")
        try:
            response = await self._client.post(f"/{self._phone_number_id}/messages", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                f"WhatsApp API {exc.response.status_code} for {body.get('type', 'status')}: "
                f"{exc.response.text[:500]}"
            )
            return False
        except httpx.HTTPError as exc:
            logger.error(f"WhatsApp request failed: {exc}")
            return False
        return True

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    async def fetch_media(self, ref: MediaRef) -> Path:
        """Resolve a media id to its download URL and save the file."""
        if self._client is None:
            raise AdapterFailure("media", "WhatsApp handler is not connected")
        try:
            meta = await self._client.get(f"/{ref.handle}")
            meta.raise_for_status()
            url = meta.json().get("url")
            if not url:
                raise AdapterFailure("media", f"No download URL for media {ref.handle}")

            download = await self._client.get(url, timeout=MEDIA_DOWNLOAD_TIMEOUT)
            download.raise_for_status()

            mime = (ref.mime_type or meta.json().get("mime_type") or "").split(";")[0]
            suffix = _MIME_SUFFIXES.get(mime.strip(), VOICE_FILE_EXTENSION)
            local_path = self.inbox_path(f"voice_{ref.handle}{suffix}")
            local_path.write_bytes(download.content)
        except (httpx.HTTPError, ValueError, OSError) as exc:
            logger.error(f"Failed to download WhatsApp media {ref.handle}: {exc}")
            raise AdapterFailure("media", str(exc), exc) from exc

        logger.info(f"Downloaded WhatsApp media to {local_path}")
        return local_path
