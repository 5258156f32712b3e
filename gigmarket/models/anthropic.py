"""AnthropicModel: ModelProtocol implementation for Anthropic's API.

The ``anthropic`` SDK is imported when the class is instantiated, so this
module imports cleanly without it installed.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from gigmarket.protocols import GigmarketError, ModelCapabilities, ModelMessage, ModelResponse

logger = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_MODEL = "claude-haiku-4-5-20251001"


class AnthropicModelError(GigmarketError):
    """Raised when the Anthropic SDK reports an error."""

    def __init__(self, error_class: str, message: str) -> None:
        super().__init__(message)
        self.error_class = error_class


class AnthropicModel:
    """Text generation through the Anthropic messages API.

    Requires the ``anthropic`` package (``pip install gigmarket[anthropic]``)::

        model = AnthropicModel()  # uses ANTHROPIC_API_KEY
        provider = ModelRankingProvider(model)
    """

    def __init__(
        self,
        model_id: str = DEFAULT_ANTHROPIC_MODEL,
        *,
        api_key: Optional[str] = None,
        max_tokens: int = 2048,
        timeout: Optional[float] = None,
    ) -> None:
        try:
            import anthropic  # noqa: F811
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for AnthropicModel. "
                "Install it with: pip install anthropic"
            ) from None

        resolved_key = (
            api_key or os.environ.get("CLAUDE_API_KEY") or os.environ.get("ANTHROPIC_API_KEY")
        )
        if not resolved_key:
            raise ValueError(
                "An API key is required. Pass api_key= or set CLAUDE_API_KEY / ANTHROPIC_API_KEY."
            )

        self._model_id = model_id
        self._max_tokens = max_tokens
        client_kwargs: dict[str, Any] = {"api_key": resolved_key}
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        self._client = anthropic.Anthropic(**client_kwargs)

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            model_id=self._model_id,
            provider="anthropic",
            context_window=200_000,
            max_output_tokens=self._max_tokens,
        )

    def generate(
        self,
        messages: list[ModelMessage],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system: Optional[str] = None,
    ) -> ModelResponse:
        """Generate a complete response."""
        # The messages API takes system text as a top-level parameter
        system_parts = [system] if system else []
        api_messages: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            else:
                api_messages.append({"role": msg.role, "content": msg.content})

        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "messages": api_messages,
            "max_tokens": max_tokens or self._max_tokens,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = self._client.messages.create(**kwargs)
        except Exception as exc:
            logger.debug("Anthropic generate failed: %s", exc, exc_info=True)
            raise _classify_error(exc, "Anthropic API error") from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        usage = {}
        if response.usage:
            usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }
        return ModelResponse(
            content=text,
            usage=usage,
            stop_reason=response.stop_reason,
            model_id=response.model,
        )


def _classify_error(exc: Exception, prefix: str) -> AnthropicModelError:
    """Map an SDK exception to an AnthropicModelError with an error class."""
    try:
        import anthropic as _anthropic
    except ImportError:
        return AnthropicModelError("unknown", f"{prefix}: {exc}")

    for attr, error_class, label in (
        ("RateLimitError", "rate_limit", "rate limited"),
        ("AuthenticationError", "auth", "auth failed"),
        ("APITimeoutError", "timeout", "timeout"),
    ):
        exc_type = getattr(_anthropic, attr, None)
        if isinstance(exc_type, type) and isinstance(exc, exc_type):
            return AnthropicModelError(error_class, f"{prefix}: {label}: {exc}")

    api_status = getattr(_anthropic, "APIStatusError", None)
    if isinstance(api_status, type) and isinstance(exc, api_status):
        code = getattr(exc, "status_code", "?")
        return AnthropicModelError("server", f"{prefix}: API error ({code}): {exc}")

    return AnthropicModelError("unknown", f"{prefix}: {exc}")
