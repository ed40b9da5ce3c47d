"""Generation Port: the one seam through which both engines reach an LLM.

Resolves pipeline stages to model identifiers, routes each request to the
backend that serves the model, validates structured output with pydantic,
and negotiates search augmentation from a table of model-identifier rules.
"""

import json
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from deepthink.models import GenerationRequest, Stage
from deepthink.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class StructuredDecodeError(Exception):
    """Raised when a structured response does not match its schema."""

    def __init__(self, model: str, message: str) -> None:
        self.model = model
        super().__init__(f"[{model}] {message}")


@dataclass(frozen=True)
class SearchAugmentation:
    tools: list[dict[str, Any]] | None = None
    provider_options: dict[str, dict[str, Any]] | None = None


@dataclass(frozen=True)
class SearchRule:
    pattern: str                                  # regex searched in the model id
    kind: str                                     # "tools" or "provider_options"
    build: Callable[[int], Any]                   # max_results -> augmentation payload


def _openai_web_search(max_results: int) -> list[dict[str, Any]]:
    return [{
        "type": "web_search_preview",
        "search_context_size": "high" if max_results > 5 else "medium",
    }]


def _openrouter_web_plugin(max_results: int) -> dict[str, dict[str, Any]]:
    return {"openrouter": {"plugins": [{"id": "web", "max_results": max_results}]}}


# New search-capable families are added here, not in the engines.
SEARCH_RULES: tuple[SearchRule, ...] = (
    SearchRule(r"^gpt-4o", "tools", _openai_web_search),
    SearchRule(r"openrouter", "provider_options", _openrouter_web_plugin),
)


class GenerationPort:
    """Stage-aware facade over a set of provider backends."""

    def __init__(
        self,
        providers: Sequence[AIProvider],
        default_model: str,
        stage_models: Mapping[str, str | None] | None = None,
        search_rules: Sequence[SearchRule] = SEARCH_RULES,
    ) -> None:
        if not default_model:
            raise ValueError("default_model is required")
        self._providers = list(providers)
        self._default_model = default_model
        self._stage_models = dict(stage_models or {})
        self._search_rules = tuple(search_rules)

    @property
    def default_model(self) -> str:
        return self._default_model

    def with_default_model(self, model: str) -> "GenerationPort":
        """Same backends and stage map, different fallback model."""
        return GenerationPort(self._providers, model, self._stage_models, self._search_rules)

    def resolve_model(self, stage: Stage) -> str:
        return self._stage_models.get(stage.value) or self._default_model

    def provider_for(self, model: str) -> AIProvider:
        for provider in self._providers:
            if provider.handles(model):
                return provider
        raise ProviderError("router", f"No provider configured for model '{model}'")

    async def invoke_text(
        self,
        model: str,
        *,
        system: str | None = None,
        prompt: str | None = None,
        messages: Sequence[dict[str, str]] | None = None,
        tools: list[dict[str, Any]] | None = None,
        provider_options: dict[str, dict[str, Any]] | None = None,
    ) -> str:
        request = self._build_request(model, system, prompt, messages, tools, provider_options)
        response = await self.provider_for(model).generate(request)
        return response.content

    async def invoke_structured(self, model: str, schema: type[SchemaT], prompt: str) -> SchemaT:
        """Ask for JSON matching `schema` and validate it.

        Raises:
            StructuredDecodeError: If the response is not valid JSON for the schema.
            ProviderError: If the backend call itself fails.
        """
        schema_hint = json.dumps(schema.model_json_schema())
        request = self._build_request(
            model,
            system=None,
            prompt=f"{prompt}\n\nRespond with a single JSON object matching this JSON Schema:\n{schema_hint}",
            messages=None,
            tools=None,
            provider_options=None,
        )
        request.json_mode = True
        response = await self.provider_for(model).generate(request)
        try:
            return schema.model_validate_json(response.content)
        except ValidationError as exc:
            raise StructuredDecodeError(model, f"Response does not match {schema.__name__}: {exc}") from exc

    def resolve_search_augmentation(
        self,
        model: str,
        provider: str = "model",
        max_results: int = 5,
    ) -> SearchAugmentation:
        """Pick built-in search tools and/or provider options for a model.

        Only the "model" search provider negotiates anything. Tools and
        provider options are matched independently; the first rule of each
        kind wins.
        """
        if provider != "model":
            return SearchAugmentation()

        found: dict[str, Any] = {}
        for rule in self._search_rules:
            if rule.kind in found:
                continue
            if re.search(rule.pattern, model):
                found[rule.kind] = rule.build(max_results)
        if found:
            logger.debug("Search augmentation for %s: %s", model, sorted(found))
        return SearchAugmentation(
            tools=found.get("tools"),
            provider_options=found.get("provider_options"),
        )

    @staticmethod
    def _build_request(
        model: str,
        system: str | None,
        prompt: str | None,
        messages: Sequence[dict[str, str]] | None,
        tools: list[dict[str, Any]] | None,
        provider_options: dict[str, dict[str, Any]] | None,
    ) -> GenerationRequest:
        conversation = [dict(m) for m in (messages or [])]
        if prompt is not None:
            conversation.append({"role": "user", "content": prompt})
        if not conversation:
            raise ValueError("Either prompt or messages must be provided")
        return GenerationRequest(
            model=model,
            messages=conversation,
            system=system,
            tools=tools,
            provider_options=provider_options,
        )
