"""Text completion through LiteLLM.

``litellm.acompletion`` speaks to OpenAI, Anthropic, Groq, Gemini, Ollama
and the rest behind one call, so the model slug in config
(``"openai/gpt-4o-mini"``, ``"groq/llama3-8b-8192"``) picks the backend.
"""

from __future__ import annotations

import litellm
from loguru import logger

from relaybot.errors import AdapterFailure

from .base import BaseLLMProvider, LLMResponse, usage_counts


class LiteLLMProvider(BaseLLMProvider):
    """Completion backend delegating to ``litellm.acompletion``.

    Keys are picked up from the usual env vars (``OPENAI_API_KEY`` …) unless
    ``api_key`` / ``api_base`` are given to route through a proxy.
    """

    name: str = "litellm"

    async def generate_response(
        self,
        model: str,
        messages: list[dict],
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        request: dict = dict(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        if self._api_key:
            request["api_key"] = self._api_key
        if self._api_base:
            request["api_base"] = self._api_base
        if self._default_headers:
            request["extra_headers"] = self._default_headers

        logger.debug("litellm.acompletion model={} turns={}", model, len(messages))

        try:
            result = await litellm.acompletion(**request)
        except litellm.exceptions.AuthenticationError as exc:
            logger.error("Rejected credentials for {}: {}", model, exc)
            raise AdapterFailure("completion", "authentication failed", exc) from exc
        except litellm.exceptions.RateLimitError as exc:
            logger.warning("Rate limit hit for {}: {}", model, exc)
            raise AdapterFailure("completion", "rate limited", exc) from exc
        except Exception as exc:
            logger.error("Completion via litellm failed ({}): {}", model, exc)
            raise AdapterFailure("completion", str(exc), exc) from exc

        if not result.choices:
            raise AdapterFailure("completion", f"{model} returned no choices")

        text = getattr(result.choices[0].message, "content", None)
        usage = usage_counts(getattr(result, "usage", None))
        logger.debug("litellm reply chars={} usage={}", len(text or ""), usage)
        return LLMResponse(content=text, usage=usage, raw_response=result)
