"""Tests for the webhook HTTP surface (FastAPI TestClient)."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from relaybot.handler.channels.telegram import TelegramChannelHandler
from relaybot.handler.channels.whatsapp import WhatsAppChannelHandler
from relaybot.handler.messages import Channel, MediaRef, Text
from relaybot.server import create_app


@pytest.fixture
def bus():
    bus = AsyncMock()
    bus.publish_inbound = AsyncMock()
    return bus


@pytest.fixture
def whatsapp(bus, tmp_path):
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
        base_url="https://graph.facebook.com/v18.0",
    )
    return WhatsAppChannelHandler(
        bus=bus,
        token="T",
        media_dir=tmp_path,
        config={"phone_number_id": "1234", "verify_token": "secret"},
        client=client,
    )


@pytest.fixture
def telegram(bus, tmp_path):
    channel = TelegramChannelHandler(bus=bus, token="T", media_dir=tmp_path)
    channel.process_webhook_update = AsyncMock(return_value=None)
    return channel


def _client(tmp_path, **channels):
    handler = MagicMock()
    handler.get_channel.side_effect = channels.get
    return TestClient(create_app(handler, tmp_path / "media"))


class TestHealth:
    def test_health(self, tmp_path):
        assert _client(tmp_path).get("/health").json() == {"status": "ok"}


class TestMedia:
    def test_serves_generated_files(self, tmp_path):
        client = _client(tmp_path)
        (tmp_path / "media" / "image_x.png").write_bytes(b"png")

        response = client.get("/media/image_x.png")
        assert response.status_code == 200
        assert response.content == b"png"

    def test_unknown_file_404(self, tmp_path):
        assert _client(tmp_path).get("/media/nope.png").status_code == 404

    @pytest.mark.asyncio
    async def test_downloaded_voice_not_served(self, bus, tmp_path):
        def graph(request):
            if request.url.path.endswith("/media-9"):
                if request.url.host == "lookaside.example.com":
                    return httpx.Response(200, content=b"OggS")
                return httpx.Response(
                    200, json={"url": "https://lookaside.example.com/media-9", "mime_type": "audio/ogg"}
                )
            return httpx.Response(404)

        channel = WhatsAppChannelHandler(
            bus=bus,
            token="T",
            media_dir=tmp_path / "media",
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(graph),
                base_url="https://graph.facebook.com/v18.0",
            ),
        )
        client = _client(tmp_path, whatsapp=channel)

        path = await channel.fetch_media(MediaRef(Channel.WHATSAPP, "media-9", "audio/ogg"))
        try:
            assert path.exists()
            assert not (tmp_path / "media" / path.name).exists()
            assert client.get(f"/media/{path.name}").status_code == 404
        finally:
            path.unlink()


class TestTelegramRoutes:
    def test_status_disabled(self, tmp_path):
        response = _client(tmp_path).get("/telegram/status")
        assert response.json() == {"status": "Telegram bot is disabled"}

    def test_status_stopped(self, tmp_path, telegram):
        response = _client(tmp_path, telegram=telegram).get("/telegram/status")
        assert response.json() == {"status": "Telegram bot is stopped"}

    def test_webhook_forwards_update(self, tmp_path, telegram):
        update = {"update_id": 1, "message": {"message_id": 1}}
        response = _client(tmp_path, telegram=telegram).post("/telegram/webhook", json=update)

        assert response.json() == {"status": "ok"}
        telegram.process_webhook_update.assert_awaited_once_with(update)

    def test_webhook_error_reported(self, tmp_path, telegram):
        telegram.process_webhook_update.side_effect = RuntimeError("not connected")
        response = _client(tmp_path, telegram=telegram).post("/telegram/webhook", json={})
        assert response.json() == {"status": "error", "message": "not connected"}

    def test_webhook_disabled(self, tmp_path):
        assert _client(tmp_path).post("/telegram/webhook", json={}).status_code == 404


class TestWhatsAppRoutes:
    def test_verify_echoes_challenge(self, tmp_path, whatsapp):
        response = _client(tmp_path, whatsapp=whatsapp).get(
            "/whatsapp/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "secret", "hub.challenge": "987"},
        )
        assert response.status_code == 200
        assert response.text == "987"

    def test_verify_token_mismatch(self, tmp_path, whatsapp):
        response = _client(tmp_path, whatsapp=whatsapp).get(
            "/whatsapp/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "987"},
        )
        assert response.status_code == 403
        assert response.text == "Error: Token Mismatch"

    def test_verify_missing_parameters(self, tmp_path, whatsapp):
        response = _client(tmp_path, whatsapp=whatsapp).get("/whatsapp/webhook")
        assert response.status_code == 403
        assert response.text == "Error: Missing Parameters"

    def test_message_processed(self, tmp_path, whatsapp, bus):
        payload = {
            "entry": [{"changes": [{"value": {"messages": [
                {"from": "4915", "id": "wamid.1", "type": "text", "text": {"body": "hi"}}
            ]}}]}]
        }
        response = _client(tmp_path, whatsapp=whatsapp).post("/whatsapp/webhook", json=payload)

        assert response.json() == {"status": "success", "message": "Message processed"}
        event = bus.publish_inbound.call_args.args[0]
        assert event.channel is Channel.WHATSAPP
        assert event.kind == Text("hi")

    def test_nothing_to_process(self, tmp_path, whatsapp, bus):
        response = _client(tmp_path, whatsapp=whatsapp).post("/whatsapp/webhook", json={"entry": []})

        assert response.json() == {"status": "success", "message": "No messages to process"}
        bus.publish_inbound.assert_not_awaited()

    def test_disabled(self, tmp_path):
        assert _client(tmp_path).get("/whatsapp/webhook").status_code == 404
