"""OpenAI provider using openai SDK with native async.

Plain requests go through chat completions; requests carrying tools (the
built-in web search) go through the Responses API, which is where OpenAI
exposes ``web_search_preview``.
"""

import asyncio
import logging
import os
import time
from typing import Any

from openai import AsyncOpenAI

from config.config_loader import ProviderConfig
from deepthink.models import GenerationRequest, ModelResponse
from deepthink.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self.model_prefixes = tuple(config.model_prefixes)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

    def name(self) -> str:
        return self._config.name

    def _chat_messages(self, request: GenerationRequest) -> list[dict[str, str]]:
        messages = list(request.messages)
        if request.system:
            messages.insert(0, {"role": "system", "content": request.system})
        return messages

    async def _chat(self, request: GenerationRequest) -> tuple[str | None, int | None]:
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": self._chat_messages(request),
            "max_completion_tokens": self._config.max_tokens,
        }
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self._client.chat.completions.create(**kwargs)
        choice = response.choices[0] if response.choices else None
        content = choice.message.content if choice else None
        token_count = response.usage.total_tokens if response.usage else None
        return content, token_count

    async def _responses(self, request: GenerationRequest) -> tuple[str | None, int | None]:
        kwargs: dict[str, Any] = {
            "model": request.model,
            "input": request.messages,
            "tools": request.tools,
            "max_output_tokens": self._config.max_tokens,
        }
        if request.system:
            kwargs["instructions"] = request.system
        response = await self._client.responses.create(**kwargs)
        token_count = response.usage.total_tokens if response.usage else None
        return response.output_text, token_count

    async def generate(self, request: GenerationRequest) -> ModelResponse:
        start = time.monotonic()
        call = self._responses(request) if request.tools else self._chat(request)
        try:
            content, token_count = await asyncio.wait_for(call, timeout=self._config.timeout_sec)
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not content:
            raise ProviderError(self._config.name, "Empty response content")

        logger.info(
            "OpenAI %s: %.2fs, %s tokens",
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
