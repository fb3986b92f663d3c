"""Telegram channel handler — normalizes Bot API updates and sends replies.

Supports:
    - Polling mode (development) and webhook mode (production)
    - Commands (/start, /imagine …), text, voice notes, inline-button callbacks
    - Text, photo, voice and inline-keyboard menu replies
    - Placeholder replies that are edited or deleted once the result arrives
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger
from telegram import (
    Bot,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    ReplyParameters,
    Update,
)
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, ContextTypes, TypeHandler

from relaybot.constants import TELEGRAM_MENU_COLUMNS, VOICE_FILE_EXTENSION
from relaybot.errors import AdapterFailure
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

IMAGE_CAPTION_TEMPLATE = '🎨 Generated: "{prompt}"'


class TelegramChannelHandler(BaseChannelHandler):
    """Telegram channel handler.

    Responsibilities:
        - Connect / disconnect (polling, or register the webhook URL)
        - Turn Updates into InboundEvents and publish them to the bus
        - Send an OutboundReply via the Bot API in Telegram's native format
        - Download voice notes for transcription
    """

    name = "telegram"

    def __init__(
        self,
        bus: MessageBus,
        token: str,
        media_dir: Path,
        public_url: str = "",
        config: dict | None = None,
        inbox_dir: Path | None = None,
    ):
        """
        Args:
            bus: MessageBus instance for publishing inbound events.
            token: Telegram Bot API token from @BotFather.
            media_dir: Directory of generated media (served at /media).
            public_url: Public base URL of the webhook server.
            config: Optional channel config (``mode``, ``webhook_url``).
            inbox_dir: Private directory for downloaded voice notes
                       (a fresh temp dir when omitted).
        """
        super().__init__(bus, media_dir, public_url, config, inbox_dir)
        self._token = token
        self._app: Application | None = None
        self._bot: Bot | None = None
        # (chat_id, inbound message_id) → placeholder message_id
        self._placeholders: dict[tuple[str, str], int] = {}

    @property
    def mode(self) -> str:
        return self._config.get("mode", "polling")

    # ------------------------------------------------------------------
    # BaseChannelHandler interface
    # ------------------------------------------------------------------

    async def connect(self):
        """Build the Telegram Application and start receiving updates."""
        if self._running:
            logger.warning("TelegramChannelHandler.connect() called while already connected")
            return

        self._app = Application.builder().token(self._token).build()
        self._bot = self._app.bot

        await self._app.initialize()
        await self._app.start()

        if self.mode == "webhook":
            webhook_url = self._config.get("webhook_url") or (
                f"{self._public_url}/telegram/webhook" if self._public_url else ""
            )
            if webhook_url:
                await self._bot.set_webhook(webhook_url)
                logger.info(f"Telegram webhook set to: {webhook_url}")
            else:
                logger.warning("Telegram webhook mode without webhook_url or public_url")
        else:
            self._app.add_handler(TypeHandler(Update, self._handle_update))
            await self._app.updater.start_polling(drop_pending_updates=True)

        self._running = True
        logger.info(f"Telegram channel connected ({self.mode})")

    async def disconnect(self):
        """Stop polling, shut down the Application gracefully."""
        if not self._running or self._app is None:
            return

        try:
            if self._app.updater and self._app.updater.running:
                await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
        except Exception as exc:
            logger.error(f"Error during Telegram disconnect: {exc}")
        finally:
            self._running = False
            logger.info("Telegram channel disconnected")

    async def process_webhook_update(self, payload: dict) -> InboundEvent | None:
        """Handle one JSON update POSTed by Telegram to the webhook."""
        if self._bot is None:
            raise RuntimeError("Cannot process update: handler is not connected")
        update = Update.de_json(payload, self._bot)
        return await self._handle_update(update)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _handle_update(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE | None = None
    ) -> InboundEvent | None:
        """Normalize an Update and publish it; acknowledge button presses."""
        if update.callback_query is not None:
            try:
                await update.callback_query.answer()
            except TelegramError as exc:
                logger.warning(f"Failed to answer callback query: {exc}")

        event = self.normalize(update)
        if event is None:
            logger.debug(f"Ignoring non-actionable update {update.update_id}")
            return None

        await self._publish_inbound(event)
        return event

    def normalize(self, raw: Any) -> InboundEvent | None:
        update: Update = raw

        query = update.callback_query
        if query is not None:
            if not query.data or query.from_user is None:
                return None
            chat_id = query.message.chat.id if query.message else query.from_user.id
            return InboundEvent(
                channel=Channel.TELEGRAM,
                user_id=str(query.from_user.id),
                chat_id=str(chat_id),
                message_id=str(query.id),
                kind=Interactive(
                    selection_id=query.data,
                    selection_label=self._button_label(query.message, query.data),
                ),
                display_name=query.from_user.first_name,
            )

        msg = update.message
        if msg is None:
            return None

        kind = None
        if msg.text:
            kind = parse_text(msg.text)
        elif msg.voice:
            kind = Voice(
                MediaRef(
                    channel=Channel.TELEGRAM,
                    handle=msg.voice.file_id,
                    mime_type=msg.voice.mime_type,
                )
            )
        if kind is None:
            return None

        user = msg.from_user
        extra = {"timestamp": msg.date.timestamp()} if msg.date else {}
        return InboundEvent(
            channel=Channel.TELEGRAM,
            user_id=str(user.id) if user else str(msg.chat_id),
            chat_id=str(msg.chat_id),
            message_id=str(msg.message_id),
            kind=kind,
            display_name=user.first_name if user else None,
            **extra,
        )

    @staticmethod
    def _button_label(message, data: str) -> str:
        """Find the text of the inline button whose callback_data is ``data``."""
        markup = getattr(message, "reply_markup", None)
        for row in getattr(markup, "inline_keyboard", None) or ():
            for button in row:
                if button.callback_data == data:
                    return button.text
        return data

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_message(self, reply: OutboundReply):
        """Send a reply to a Telegram chat in its native format."""
        if self._bot is None:
            raise RuntimeError("Cannot send message: handler is not connected")

        try:
            payload = reply.payload
            if isinstance(payload, TextMessage):
                await self._send_text(reply, payload)
            elif isinstance(payload, ImageMessage):
                await self._drop_placeholder(reply)
                with self.local_media(payload.image_ref).open("rb") as photo:
                    await self._bot.send_photo(
                        chat_id=reply.chat_id,
                        photo=photo,
                        caption=IMAGE_CAPTION_TEMPLATE.format(prompt=payload.caption),
                    )
            elif isinstance(payload, AudioMessage):
                await self._drop_placeholder(reply)
                with self.local_media(payload.audio_ref).open("rb") as voice:
                    await self._bot.send_voice(
                        chat_id=reply.chat_id,
                        voice=voice,
                        reply_parameters=self._reply_to(payload.reply_to_message_id),
                    )
            elif isinstance(payload, MenuMessage):
                await self._send_markdown(
                    reply.chat_id, payload.body, reply_markup=self._keyboard(payload)
                )
        except (TelegramError, OSError, ValueError) as exc:
            logger.error(f"Failed to send Telegram reply to chat {reply.chat_id}: {exc}")
            return

        logger.debug(f"Sent {type(reply.payload).__name__} to chat {reply.chat_id}")

    async def _send_text(self, reply: OutboundReply, payload: TextMessage):
        placeholder = self._pop_placeholder(reply) if reply.supersedes else None
        if placeholder is not None:
            await self._bot.edit_message_text(
                chat_id=reply.chat_id, message_id=placeholder, text=payload.body
            )
            return

        sent = await self._send_markdown(
            reply.chat_id,
            payload.body,
            reply_parameters=self._reply_to(payload.reply_to_message_id),
        )
        if reply.is_ephemeral and reply.source_message_id is not None:
            self._placeholders[(reply.chat_id, reply.source_message_id)] = sent.message_id

    async def _send_markdown(self, chat_id: str, text: str, **kwargs):
        """Send with Markdown, falling back to plain text if entities don't parse."""
        try:
            return await self._bot.send_message(
                chat_id=chat_id, text=text, parse_mode=ParseMode.MARKDOWN, **kwargs
            )
        except BadRequest as exc:
            if "parse entities" not in str(exc).lower():
                raise
            logger.debug(f"Markdown rejected for chat {chat_id}; resending as plain text")
            return await self._bot.send_message(chat_id=chat_id, text=text, **kwargs)

    async def _drop_placeholder(self, reply: OutboundReply):
        placeholder = self._pop_placeholder(reply) if reply.supersedes else None
        if placeholder is None:
            return
        try:
            await self._bot.delete_message(chat_id=reply.chat_id, message_id=placeholder)
        except TelegramError as exc:
            logger.warning(f"Could not delete placeholder {placeholder}: {exc}")

    def _pop_placeholder(self, reply: OutboundReply) -> int | None:
        if reply.source_message_id is None:
            return None
        return self._placeholders.pop((reply.chat_id, reply.source_message_id), None)

    @staticmethod
    def _reply_to(message_id: str | None) -> ReplyParameters | None:
        if not message_id or not message_id.isdigit():
            return None
        return ReplyParameters(message_id=int(message_id), allow_sending_without_reply=True)

    @staticmethod
    def _keyboard(menu: MenuMessage) -> InlineKeyboardMarkup:
        buttons = [
            InlineKeyboardButton(option.label, callback_data=option.id)
            for option in menu.options
        ]
        rows = [
            buttons[i : i + TELEGRAM_MENU_COLUMNS]
            for i in range(0, len(buttons), TELEGRAM_MENU_COLUMNS)
        ]
        return InlineKeyboardMarkup(rows)

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    async def fetch_media(self, ref: MediaRef) -> Path:
        """Download a voice note into the private inbox."""
        if self._bot is None:
            raise AdapterFailure("media", "Telegram handler is not connected")
        try:
            tg_file = await self._bot.get_file(ref.handle)
            suffix = Path(tg_file.file_path).suffix if tg_file.file_path else ""
            local_path = self.inbox_path(f"voice_{ref.handle}{suffix or VOICE_FILE_EXTENSION}")
            await tg_file.download_to_drive(local_path)
        except (TelegramError, OSError) as exc:
            logger.error(f"Failed to download voice {ref.handle}: {exc}")
            raise AdapterFailure("media", str(exc), exc) from exc

        logger.info(f"Downloaded voice to {local_path}")
        return local_path
