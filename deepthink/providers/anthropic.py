"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
import os
import time
from typing import Any

import anthropic as anthropic_sdk

from config.config_loader import ProviderConfig
from deepthink.models import GenerationRequest, ModelResponse
from deepthink.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK.

    Claude has no JSON response mode; the structured prompt alone asks for
    JSON. Search tools from the augmentation table target other families and
    are dropped here.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self.model_prefixes = tuple(config.model_prefixes)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    async def generate(self, request: GenerationRequest) -> ModelResponse:
        if request.tools:
            logger.debug("Anthropic %s: ignoring %d tool(s)", request.model, len(request.tools))

        kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": self._config.max_tokens,
            "messages": request.messages,
        }
        if request.system:
            kwargs["system"] = request.system

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise ProviderError(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        content = "\n".join(text_blocks)

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        logger.info(
            "Anthropic %s: %.2fs, %s tokens",
            request.model,
            latency,
            token_count,
        )

        return ModelResponse(
            provider=self._config.name,
            model=request.model,
            content=content,
            latency_sec=latency,
            token_count=token_count,
        )
