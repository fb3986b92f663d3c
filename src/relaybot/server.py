"""Webhook HTTP surface.

    GET  /health             liveness probe
    GET  /telegram/status    Telegram bot status
    POST /telegram/webhook   Telegram update → bus
    GET  /whatsapp/webhook   WhatsApp subscription challenge
    POST /whatsapp/webhook   WhatsApp payload → bus
    GET  /media/<ref>        generated images / speech for link-based sends

Handlers only normalize and enqueue; replies go out through the bus, so
the platforms get their 200 quickly and never retry a slow event.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger

from relaybot.constants import MEDIA_URL_PATH
from relaybot.errors import ValidationFailure, WebhookVerificationError
from relaybot.handler.channels.telegram import TelegramChannelHandler
from relaybot.handler.channels.whatsapp import WhatsAppChannelHandler
from relaybot.handler.handler import CommunicationHandler


def create_app(handler: CommunicationHandler, media_dir: Path) -> FastAPI:
    """Build the FastAPI app bound to ``handler``'s channels."""
    app = FastAPI(title="relaybot")

    media_dir.mkdir(parents=True, exist_ok=True)
    app.mount(MEDIA_URL_PATH, StaticFiles(directory=str(media_dir)), name="media")

    def _channel(name: str, cls):
        channel = handler.get_channel(name)
        return channel if isinstance(channel, cls) else None

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Telegram
    # ------------------------------------------------------------------

    @app.get("/telegram/status")
    async def telegram_status():
        channel = _channel("telegram", TelegramChannelHandler)
        if channel is None:
            return {"status": "Telegram bot is disabled"}
        return {"status": "Telegram bot is running" if channel.is_running else "Telegram bot is stopped"}

    @app.post("/telegram/webhook")
    async def telegram_webhook(request: Request):
        channel = _channel("telegram", TelegramChannelHandler)
        if channel is None:
            return JSONResponse({"status": "error", "message": "Telegram is disabled"}, 404)

        update = await request.json()
        logger.debug("Received Telegram update {}", update.get("update_id"))
        try:
            await channel.process_webhook_update(update)
        except (ValidationFailure, RuntimeError, ValueError, KeyError) as exc:
            logger.error("Webhook processing error: {}", exc)
            return {"status": "error", "message": str(exc)}
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # WhatsApp
    # ------------------------------------------------------------------

    @app.get("/whatsapp/webhook")
    async def whatsapp_verify(
        mode: str | None = Query(None, alias="hub.mode"),
        challenge: str | None = Query(None, alias="hub.challenge"),
        token: str | None = Query(None, alias="hub.verify_token"),
    ):
        channel = _channel("whatsapp", WhatsAppChannelHandler)
        if channel is None:
            return PlainTextResponse("Error: WhatsApp is disabled", 404)
        try:
            return PlainTextResponse(channel.verify_webhook(mode, token, challenge))
        except WebhookVerificationError as exc:
            return PlainTextResponse(str(exc), 403)

    @app.post("/whatsapp/webhook")
    async def whatsapp_webhook(request: Request):
        channel = _channel("whatsapp", WhatsAppChannelHandler)
        if channel is None:
            return JSONResponse({"status": "error", "message": "WhatsApp is disabled"}, 404)

        payload = await request.json()
        try:
            event = await channel.handle_webhook(payload)
        except ValidationFailure as exc:
            logger.error("Malformed WhatsApp message: {}", exc)
            return {"status": "error", "message": str(exc)}

        if event is None:
            return {"status": "success", "message": "No messages to process"}
        return {"status": "success", "message": "Message processed"}

    return app
