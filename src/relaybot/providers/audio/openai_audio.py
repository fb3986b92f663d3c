"""Speech-to-text and text-to-speech over an OpenAI-compatible audio API.

Uses ``/audio/transcriptions`` (multipart upload) and ``/audio/speech``
(returns encoded audio). Synthesized speech is stored as OGG/Opus in the
media directory, which both Telegram voice notes and WhatsApp audio accept.
"""

from __future__ import annotations

import mimetypes
from pathlib import Path

import httpx
from loguru import logger

from relaybot.config import AudioConfig
from relaybot.constants import AUDIO_TIMEOUT
from relaybot.providers.media import save_media_file

from .base import AudioResult, BaseSpeechToText, BaseTextToSpeech


class OpenAIAudioProvider(BaseSpeechToText, BaseTextToSpeech):
    """Both speech directions against one OpenAI-compatible endpoint."""

    def __init__(
        self,
        config: AudioConfig,
        media_dir: Path,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._media_dir = media_dir
        self._client = client
        self._api_base = config.api_base.rstrip("/")

    # ------------------------------------------------------------------
    # Speech-to-text
    # ------------------------------------------------------------------

    async def transcribe(self, audio_path: Path) -> AudioResult:
        try:
            audio_bytes = Path(audio_path).read_bytes()
        except OSError as exc:
            logger.error("Cannot read audio file {}: {}", audio_path, exc)
            return AudioResult.error(f"unreadable audio file: {exc}")

        mime = mimetypes.guess_type(str(audio_path))[0] or "audio/ogg"
        files = {"file": (Path(audio_path).name, audio_bytes, mime)}
        form = {"model": self.config.stt_model}

        try:
            response = await self._post(
                "/audio/transcriptions", data=form, files=files
            )
            response.raise_for_status()
            text = (response.json().get("text") or "").strip()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Transcription failed for {}: {}", audio_path, exc)
            return AudioResult.error(str(exc))

        if not text:
            logger.warning("Transcription of {} was empty", audio_path)
            return AudioResult.error("empty transcript")

        logger.debug("Transcribed {} ({} chars)", audio_path.name, len(text))
        return AudioResult.success(text)

    # ------------------------------------------------------------------
    # Text-to-speech
    # ------------------------------------------------------------------

    async def synthesize(self, text: str) -> AudioResult:
        body = {
            "model": self.config.tts_model,
            "input": text,
            "voice": self.config.voice,
            "response_format": "opus",
        }
        try:
            response = await self._post("/audio/speech", json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Speech synthesis failed: {}", exc)
            return AudioResult.error(str(exc))

        if not response.content:
            return AudioResult.error("empty audio")

        try:
            ref = save_media_file(self._media_dir, "speech", ".ogg", response.content)
        except OSError as exc:
            logger.error("Cannot store synthesized speech: {}", exc)
            return AudioResult.error(str(exc))
        return AudioResult.success(ref)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _post(self, path: str, **kwargs) -> httpx.Response:
        headers = {}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        url = f"{self._api_base}{path}"

        if self._client is not None:
            return await self._client.post(url, headers=headers, timeout=AUDIO_TIMEOUT, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.post(url, headers=headers, timeout=AUDIO_TIMEOUT, **kwargs)
