"""Base LLM interface and the OpenAI implementation.

The safety classifier talks to a provider only through LLMProvider, so a
different backend (a self-hosted model, a test double) can be swapped in
without touching prompt composition or decision logic.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import openai

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """The provider call failed or returned an unusable response."""
    pass


class ProviderTimeoutError(ProviderError):
    """The provider did not answer within the per-call timeout."""
    pass


@dataclass(frozen=True)
class LLMConfig:
    """Provider credentials and sampling parameters."""
    api_key: str = ""
    base_url: str = ""
    temperature: float = 0.3
    max_tokens: int = 256

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Create config from environment variables.

        Environment variables:
            OPENAI_API_KEY: Provider API key
            OPENAI_BASE_URL: Optional compatible endpoint
            SAFETY_LLM_TEMPERATURE: Sampling temperature (default 0.3)
            SAFETY_LLM_MAX_TOKENS: Response token cap (default 256)
        """
        return cls(
            api_key=os.getenv("OPENAI_API_KEY", ""),
            base_url=os.getenv("OPENAI_BASE_URL", ""),
            temperature=float(os.getenv("SAFETY_LLM_TEMPERATURE", "0.3")),
            max_tokens=int(os.getenv("SAFETY_LLM_MAX_TOKENS", "256")),
        )


@dataclass(frozen=True)
class LLMResponse:
    """Response from one provider call."""
    text: str
    model: str
    provider: str
    tokens_used: Optional[int] = None
    latency_ms: Optional[float] = None


class LLMProvider(ABC):
    """Abstract base class for classification providers."""

    name: str = "unknown"

    @abstractmethod
    def classify(
        self,
        system_prompt: str,
        user_prompt: str,
        model_id: str,
        timeout_ms: int,
    ) -> LLMResponse:
        """Run one classification request.

        Args:
            system_prompt: Fixed safety instructions
            user_prompt: Filled user template
            model_id: Provider model identifier
            timeout_ms: Hard per-call timeout

        Returns:
            LLMResponse with the raw response text

        Raises:
            ProviderTimeoutError: If the call exceeds timeout_ms
            ProviderError: On any other provider failure
        """
        pass


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions in JSON-object mode."""

    name = "openai"

    def __init__(self, config: Optional[LLMConfig] = None, client=None):
        """Initialize OpenAI provider.

        Args:
            config: Provider configuration (defaults from environment)
            client: Optional pre-built openai.OpenAI client
        """
        self.config = config or LLMConfig.from_env()
        self._client = client

        logger.info(
            "LLM_PROVIDER_INITIALIZED",
            extra={
                "provider": self.name,
                "custom_base_url": bool(self.config.base_url),
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_tokens,
            }
        )

    @property
    def client(self) -> "openai.OpenAI":
        """Lazy-initialized OpenAI client."""
        if self._client is None:
            if not self.config.api_key:
                raise ProviderError("OpenAI API key required")
            self._client = openai.OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url or None,
                max_retries=0,
            )
        return self._client

    def classify(
        self,
        system_prompt: str,
        user_prompt: str,
        model_id: str,
        timeout_ms: int,
    ) -> LLMResponse:
        start_time = time.time()

        try:
            response = self.client.chat.completions.create(
                model=model_id,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                response_format={"type": "json_object"},
                timeout=timeout_ms / 1000.0,
            )
        except openai.APITimeoutError as e:
            logger.warning(
                "LLM_PROVIDER_TIMEOUT",
                extra={"model": model_id, "timeout_ms": timeout_ms}
            )
            raise ProviderTimeoutError(f"Provider timed out after {timeout_ms}ms") from e
        except openai.OpenAIError as e:
            logger.error(
                "LLM_PROVIDER_FAILED",
                extra={"model": model_id, "error": str(e)}
            )
            raise ProviderError(str(e)) from e

        latency_ms = (time.time() - start_time) * 1000

        if not response.choices:
            raise ProviderError("Provider returned no choices")
        text = response.choices[0].message.content
        if not text:
            raise ProviderError("Provider returned empty content")

        tokens_used = response.usage.total_tokens if response.usage else None

        logger.info(
            "LLM_PROVIDER_RESPONSE",
            extra={
                "model": model_id,
                "latency_ms": latency_ms,
                "tokens_used": tokens_used,
            }
        )

        return LLMResponse(
            text=text,
            model=model_id,
            provider=self.name,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
        )
