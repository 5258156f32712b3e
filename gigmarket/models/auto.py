"""Pick a text model from environment variables.

Used by the API service to wire model-backed ranking when a key is present.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from gigmarket.protocols import ModelProtocol

logger = logging.getLogger(__name__)

# Cheap/fast defaults; ranking prompts are short
_PROVIDER_DEFAULTS = {
    "anthropic": "claude-haiku-4-5-20251001",
    "openai": "gpt-4o-mini",
}


def auto_configure_model() -> Optional[ModelProtocol]:
    """Create a model from environment variables, or None.

    Detection priority (when ``GIGMARKET_MODEL_PROVIDER`` is not set):
    1. ``CLAUDE_API_KEY`` or ``ANTHROPIC_API_KEY`` -> Anthropic
    2. ``OPENAI_API_KEY`` -> OpenAI
    3. No key -> None; ranking then degrades to empty results

    ``GIGMARKET_MODEL`` overrides the provider's default model name.
    """
    forced_provider = os.environ.get("GIGMARKET_MODEL_PROVIDER", "").lower().strip()
    model_override = os.environ.get("GIGMARKET_MODEL", "").strip() or None

    if forced_provider:
        provider = forced_provider
    elif os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("CLAUDE_API_KEY"):
        provider = "anthropic"
    elif os.environ.get("OPENAI_API_KEY"):
        provider = "openai"
    else:
        return None

    if provider not in _PROVIDER_DEFAULTS:
        logger.warning("Unknown model provider '%s', skipping auto-configuration", provider)
        return None

    model_id = model_override or _PROVIDER_DEFAULTS[provider]

    if provider == "anthropic":
        from gigmarket.models.anthropic import AnthropicModel

        model = AnthropicModel(model_id=model_id)
    else:
        from gigmarket.models.openai import OpenAIModel

        model = OpenAIModel(model_id=model_id)

    logger.info("Auto-configured %s model (model=%s)", provider, model_id)
    return model
