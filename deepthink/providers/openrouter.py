"""OpenRouter provider using openai SDK (OpenAI-compatible API).

Model identifiers arrive as ``openrouter/<vendor>/<model>``; the routing
prefix is stripped before the request goes out. Provider options under the
``openrouter`` key (e.g. the web search plugin) are sent as extra body fields.
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

_ROUTING_PREFIX = "openrouter/"


class OpenRouterProvider(AIProvider):
    """OpenRouter gateway via OpenAI-compatible API."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self.model_prefixes = tuple(config.model_prefixes) or (_ROUTING_PREFIX,)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        if not config.base_url:
            raise ProviderError(config.name, "base_url is required for OpenRouter provider")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

    def name(self) -> str:
        return self._config.name

    @staticmethod
    def api_model(model: str) -> str:
        return model[len(_ROUTING_PREFIX):] if model.startswith(_ROUTING_PREFIX) else model

    async def generate(self, request: GenerationRequest) -> ModelResponse:
        messages = list(request.messages)
        if request.system:
            messages.insert(0, {"role": "system", "content": request.system})

        kwargs: dict[str, Any] = {
            "model": self.api_model(request.model),
            "messages": messages,
            "max_tokens": self._config.max_tokens,
        }
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        extra_body = (request.provider_options or {}).get("openrouter")
        if extra_body:
            kwargs["extra_body"] = extra_body

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info(
            "OpenRouter %s: %.2fs, %s tokens",
            request.model,
            latency,
            token_count,
        )

        return ModelResponse(
            provider=self._config.name,
            model=kwargs["model"],
            content=choice.message.content,
            latency_sec=latency,
            token_count=token_count,
        )
