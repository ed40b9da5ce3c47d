"""Abstract base for all LLM provider backends."""

from abc import ABC, abstractmethod

from deepthink.models import GenerationRequest, ModelResponse


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all LLM provider backends.

    A backend serves every model identifier that starts with one of its
    configured prefixes; the Generation Port picks the backend per call.
    """

    model_prefixes: tuple[str, ...] = ()

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'openai', 'anthropic')."""
        ...

    def handles(self, model: str) -> bool:
        """True when this backend serves the given model identifier."""
        return any(model.startswith(prefix) for prefix in self.model_prefixes)

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> ModelResponse:
        """Send one request and return the text response.

        Args:
            request: Model, conversation, and optional system prompt, tools,
                provider options and JSON mode flag.

        Returns:
            ModelResponse dataclass with content and metadata.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...
