"""gigmarket model implementations.

Concrete ModelProtocol implementations; provider SDKs are optional extras.
"""

from __future__ import annotations

from gigmarket.models.anthropic import AnthropicModel, AnthropicModelError
from gigmarket.models.auto import auto_configure_model
from gigmarket.models.openai import OpenAIModel, OpenAIModelError

__all__ = [
    "AnthropicModel",
    "AnthropicModelError",
    "OpenAIModel",
    "OpenAIModelError",
    "auto_configure_model",
]
