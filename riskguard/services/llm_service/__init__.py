"""LLM Service for riskguard.

Provider abstraction used by the Layer 3 risk classifier.
"""

from .base_llm import (
    LLMConfig,
    LLMProvider,
    LLMResponse,
    OpenAIProvider,
    ProviderError,
    ProviderTimeoutError,
)

__all__ = [
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "OpenAIProvider",
    "ProviderError",
    "ProviderTimeoutError",
]
