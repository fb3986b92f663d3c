"""Contract shared by the text-completion backends."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

_USAGE_KEYS = ("prompt_tokens", "completion_tokens", "total_tokens")


@dataclass
class LLMResponse:
    """What a backend produced for one completion request.

    Attributes:
        content:      Reply text, ``None`` when the model returned nothing.
        usage:        Token counts keyed ``prompt_tokens`` /
                      ``completion_tokens`` / ``total_tokens``.
        raw_response: Backend-native response object, kept for debugging.
    """

    content: str | None
    usage: dict[str, int] = field(default_factory=dict)
    raw_response: Any = None


def usage_counts(raw: Any) -> dict[str, int]:
    """Token counts from a usage mapping or object; ``{}`` when absent."""
    if not raw:
        return {}
    if isinstance(raw, Mapping):
        return {key: raw.get(key, 0) for key in _USAGE_KEYS}
    return {key: getattr(raw, key, 0) for key in _USAGE_KEYS}


class BaseLLMProvider(ABC):
    """A chat-completion backend.

    Implementations raise ``AdapterFailure`` for every failure; deciding what
    the user sees is the dispatch pipeline's job.
    """

    name: str = "base"

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_base = (api_base or "").rstrip("/")
        self._default_headers = default_headers or {}

    @abstractmethod
    async def generate_response(
        self,
        model: str,
        messages: list[dict],
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Complete ``messages`` (system prompt first, then the ordered turns).

        Raises:
            AdapterFailure: the request failed or produced no choices.
        """
        ...
