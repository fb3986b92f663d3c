from .base import (
    BaseLLMProvider,
    LLMResponse,
)
from .completion import CompletionService, create_llm_provider
from .litellm_provider import LiteLLMProvider
from .llmapi_provider import LlmApiProvider

__all__ = [
    "BaseLLMProvider",
    "CompletionService",
    "LiteLLMProvider",
    "LlmApiProvider",
    "LLMResponse",
    "create_llm_provider",
]
