"""Stability AI text-to-image provider.

Calls the v1 REST generation endpoint, decodes the base64 artifacts and
stores them as PNG files in the media directory.
"""

from __future__ import annotations

import base64
import binascii
from pathlib import Path

import httpx
from loguru import logger

from relaybot.config import ImageConfig
from relaybot.constants import STABILITY_TIMEOUT
from relaybot.errors import AdapterFailure
from relaybot.providers.media import save_media_file

from .base import BaseImageProvider


class StabilityImageProvider(BaseImageProvider):
    """Image provider backed by the Stability AI REST API."""

    name: str = "stability"

    def __init__(
        self,
        config: ImageConfig,
        media_dir: Path,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._media_dir = media_dir
        self._client = client

    async def text_to_image(self, prompt: str) -> list[str]:
        if not self.config.api_key:
            raise AdapterFailure("image", "Stability API key is not configured")

        url = (
            f"{self.config.api_base.rstrip('/')}/generation/"
            f"{self.config.engine}/text-to-image"
        )
        body = {
            "text_prompts": [{"text": prompt}],
            "cfg_scale": self.config.cfg_scale,
            "height": self.config.height,
            "width": self.config.width,
            "steps": self.config.steps,
            "samples": 1,
        }
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

        logger.debug("Stability request | engine={} prompt_len={}", self.config.engine, len(prompt))

        try:
            if self._client is not None:
                response = await self._client.post(
                    url, json=body, headers=headers, timeout=STABILITY_TIMEOUT
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        url, json=body, headers=headers, timeout=STABILITY_TIMEOUT
                    )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Stability API {} for engine={}: {}",
                exc.response.status_code,
                self.config.engine,
                exc.response.text[:500],
            )
            raise AdapterFailure("image", f"HTTP {exc.response.status_code}", exc) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Stability request failed: {}", exc)
            raise AdapterFailure("image", str(exc), exc) from exc

        return self._store_artifacts(data)

    def _store_artifacts(self, data: dict) -> list[str]:
        refs: list[str] = []
        for artifact in data.get("artifacts") or []:
            reason = artifact.get("finishReason", "SUCCESS")
            if reason != "SUCCESS":
                logger.warning("Skipping Stability artifact with finishReason={}", reason)
                continue
            try:
                image_bytes = base64.b64decode(artifact["base64"])
            except (KeyError, binascii.Error) as exc:
                logger.warning("Skipping undecodable Stability artifact: {}", exc)
                continue
            refs.append(save_media_file(self._media_dir, "image", ".png", image_bytes))

        if not refs:
            raise AdapterFailure("image", "Stability returned no usable images")

        logger.info("Generated {} image(s)", len(refs))
        return refs
