"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import types as genai_types

from config.config_loader import ProviderConfig
from deepthink.models import GenerationRequest, ModelResponse
from deepthink.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

# google-genai names the assistant role "model"
_ROLES = {"user": "user", "assistant": "model"}


def _to_contents(messages: list[dict[str, str]]) -> list[genai_types.Content]:
    return [
        genai_types.Content(
            role=_ROLES.get(m["role"], "user"),
            parts=[genai_types.Part(text=m["content"])],
        )
        for m in messages
    ]


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self.model_prefixes = tuple(config.model_prefixes)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    async def generate(self, request: GenerationRequest) -> ModelResponse:
        gen_config = genai_types.GenerateContentConfig(
            max_output_tokens=self._config.max_tokens,
            system_instruction=request.system,
            response_mime_type="application/json" if request.json_mode else None,
        )

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=request.model,
                    contents=_to_contents(request.messages),
                    config=gen_config,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info(
            "Gemini %s: %.2fs, %s tokens",
            request.model,
            latency,
            token_count,
        )

        return ModelResponse(
            provider=self._config.name,
            model=request.model,
            content=response.text,
            latency_sec=latency,
            token_count=token_count,
        )
