"""Text completion against any OpenAI-compatible ``/chat/completions``.

For backends LiteLLM does not cover, or when the extra dependency layer
is unwanted: Groq, Together, OpenRouter, vLLM and local servers all
accept the same JSON body.
"""

from __future__ import annotations

import json

import httpx
from loguru import logger

from relaybot.errors import AdapterFailure
from relaybot.providers.llm.base import BaseLLMProvider, LLMResponse, usage_counts

_REQUEST_TIMEOUT = 120.0


class LlmApiProvider(BaseLLMProvider):
    """Completion backend speaking the OpenAI wire format over httpx."""

    name: str = "llmapi"

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_headers: dict[str, str] | None = None,
        slug: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(api_key, api_base or "https://api.openai.com/v1", default_headers)
        self._slug = slug
        self._client = client

    async def generate_response(
        self,
        model: str,
        messages: list[dict],
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        # config slugs look like "groq/llama3"; the API wants "llama3"
        prefix = f"{self._slug}/" if self._slug else ""
        if prefix and model.startswith(prefix):
            model = model.removeprefix(prefix)

        url = f"{self._api_base}/chat/completions"
        body = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {**self._default_headers, "Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        logger.debug("POST {} model={} turns={}", url, model, len(messages))
        response = await self._post(url, body, headers)

        if response.is_error:
            try:
                detail = response.json()
            except ValueError:
                detail = response.text
            message = f"HTTP {response.status_code} from {url} for {model}: {detail}"
            logger.error(message)
            raise AdapterFailure("completion", message)

        try:
            data = response.json()
        except ValueError as exc:
            raise AdapterFailure("completion", "response was not JSON", exc) from exc
        return self._to_response(data)

    async def _post(self, url: str, body: dict, headers: dict) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.post(
                    url, json=body, headers=headers, timeout=_REQUEST_TIMEOUT
                )
            async with httpx.AsyncClient() as client:
                return await client.post(url, json=body, headers=headers, timeout=_REQUEST_TIMEOUT)
        except httpx.HTTPError as exc:
            logger.error("Completion request to {} failed: {}", url, exc)
            raise AdapterFailure("completion", str(exc), exc) from exc

    @staticmethod
    def _to_response(data: dict) -> LLMResponse:
        choices = data.get("choices")
        if not choices:
            raise AdapterFailure(
                "completion", f"no choices in response: {json.dumps(data)[:500]}"
            )

        text = (choices[0].get("message") or {}).get("content") or None
        usage = usage_counts(data.get("usage") if isinstance(data.get("usage"), dict) else None)
        logger.debug("Completion reply chars={} usage={}", len(text or ""), usage)
        return LLMResponse(content=text, usage=usage, raw_response=data)
