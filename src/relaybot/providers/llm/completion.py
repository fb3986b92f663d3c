"""Text-completion adapter: (user, ordered context) → reply text.

The CompletionService is the single place that assembles the ``messages``
list passed to ``BaseLLMProvider.generate_response()``.

Layers (top → bottom of the messages list):
    1. System prompt — persona & instructions
    2. Conversation context — from the ContextStore, oldest first
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from relaybot.config import AgentDefaults, AppConfig
from relaybot.errors import AdapterFailure
from relaybot.handler.messages import ContextEntry

from .base import BaseLLMProvider
from .litellm_provider import LiteLLMProvider
from .llmapi_provider import LlmApiProvider

SYSTEM_PROMPT = """\
You are the creative assistant of Studio Libra, a studio offering branding, \
software development, 3D models & AI, and illustrations & comics.

Core traits:
- You are friendly, concise, and honest.
- You answer questions about the studio's services and help visitors \
describe what they need.
- When a visitor wants to talk to a person, tell them a team member will \
get back to them during business hours.
- When you don't know something, say so instead of guessing.
- Replies are read in a chat app: keep them short and use light Markdown.
"""


class CompletionService:
    """Generates the assistant's next turn for one user's context."""

    def __init__(
        self,
        llm: BaseLLMProvider,
        defaults: AgentDefaults | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self.llm = llm
        self.defaults = defaults or AgentDefaults()
        self._system_prompt = system_prompt or SYSTEM_PROMPT

    def build_messages(self, context: Sequence[ContextEntry]) -> list[dict]:
        """Return [system_message, *context] as OpenAI-style dicts."""
        messages: list[dict] = [
            {"role": "system", "content": self._system_prompt},
        ]
        messages.extend(entry.to_message() for entry in context)
        return messages

    async def complete(self, user_id: str, context: Sequence[ContextEntry]) -> str:
        """Generate a reply for ``user_id`` given its full ordered context.

        Raises:
            AdapterFailure: the provider failed or produced no text.
        """
        messages = self.build_messages(context)
        logger.debug(
            "Completion for user {} | model={} context={}",
            user_id,
            self.defaults.model,
            len(context),
        )

        response = await self.llm.generate_response(
            model=self.defaults.model,
            messages=messages,
            max_tokens=self.defaults.max_tokens,
            temperature=self.defaults.temperature,
        )

        content = (response.content or "").strip()
        if not content:
            raise AdapterFailure("completion", "LLM returned an empty reply")
        return content


def create_llm_provider(config: AppConfig) -> BaseLLMProvider:
    """Instantiate the provider named by ``agent.default.provider``."""
    slug = config.agent.defaults.provider
    provider_config = config.get_provider(slug)

    if provider_config is None:
        logger.warning(
            "Provider '{}' not configured; falling back to LiteLLM env-var keys",
            slug,
        )
        return LiteLLMProvider()

    if provider_config.adapters == "openai":
        return LlmApiProvider(
            api_key=provider_config.api_key,
            api_base=provider_config.api_base or None,
            slug=provider_config.slug,
        )
    return LiteLLMProvider(
        api_key=provider_config.api_key,
        api_base=provider_config.api_base or None,
    )
