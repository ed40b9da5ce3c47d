"""Model health checks — ping every model a run will use before starting."""

import asyncio
import logging
from collections.abc import Iterable

from deepthink.generation import GenerationPort
from deepthink.models import Stage

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0

_DEEP_STAGES = (Stage.INITIAL, Stage.IMPROVEMENT, Stage.VERIFICATION, Stage.CORRECTION)
_ULTRA_STAGES = (Stage.PLANNING, Stage.AGENT_CONFIG, Stage.SYNTHESIS)


def models_for_run(port: GenerationPort, ultra: bool) -> list[str]:
    """Distinct model ids a run will call, in first-use order."""
    if not ultra:
        models = [port.resolve_model(s) for s in _DEEP_STAGES]
    else:
        agent_port = port.with_default_model(port.resolve_model(Stage.AGENT_THINKING))
        models = [port.resolve_model(s) for s in _ULTRA_STAGES]
        models += [agent_port.resolve_model(s) for s in _DEEP_STAGES]
    return list(dict.fromkeys(models))


async def _check_one(port: GenerationPort, model: str) -> tuple[str, bool, str]:
    """Ping a single model. Returns (model, ok, error_message)."""
    try:
        await asyncio.wait_for(
            port.invoke_text(model, prompt=_PING_PROMPT),
            timeout=_TIMEOUT_SEC,
        )
        return model, True, ""
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", model, exc)
        return model, False, str(exc) or type(exc).__name__


async def run_health_checks(
    port: GenerationPort,
    models: Iterable[str],
) -> dict[str, tuple[bool, str]]:
    """Ping all models in parallel.

    Returns:
        Dict mapping model id -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(port, m) for m in dict.fromkeys(models)))
    return {model: (ok, err) for model, ok, err in results}
