"""OpenAIModel: ModelProtocol implementation for OpenAI's API.

The ``openai`` SDK is imported when the class is instantiated, so this
module imports cleanly without it installed.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from gigmarket.protocols import GigmarketError, ModelCapabilities, ModelMessage, ModelResponse

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class OpenAIModelError(GigmarketError):
    """Raised when the OpenAI SDK reports an error."""

    def __init__(self, error_class: str, message: str) -> None:
        super().__init__(message)
        self.error_class = error_class


class OpenAIModel:
    """Text generation through the OpenAI chat completions API.

    Requires the ``openai`` package (``pip install gigmarket[openai]``).
    """

    def __init__(
        self,
        model_id: str = DEFAULT_OPENAI_MODEL,
        *,
        api_key: Optional[str] = None,
        max_tokens: int = 2048,
        timeout: Optional[float] = None,
    ) -> None:
        try:
            import openai as _openai  # noqa: F811
        except ImportError:
            raise ImportError(
                "The 'openai' package is required for OpenAIModel. "
                "Install it with: pip install openai"
            ) from None

        resolved_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not resolved_key:
            raise ValueError("An API key is required. Pass api_key= or set OPENAI_API_KEY.")

        self._model_id = model_id
        self._max_tokens = max_tokens
        client_kwargs: dict[str, Any] = {"api_key": resolved_key}
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        self._client = _openai.OpenAI(**client_kwargs)

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            model_id=self._model_id,
            provider="openai",
            context_window=128_000,
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
        api_messages: list[dict[str, Any]] = []
        if system:
            api_messages.append({"role": "system", "content": system})
        api_messages.extend({"role": m.role, "content": m.content} for m in messages)

        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "messages": api_messages,
            "max_tokens": max_tokens or self._max_tokens,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            logger.debug("OpenAI generate failed: %s", exc, exc_info=True)
            raise _classify_error(exc, "OpenAI API error") from exc

        choice = response.choices[0]
        usage = {}
        if response.usage:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }
        return ModelResponse(
            content=choice.message.content or "",
            usage=usage,
            stop_reason=choice.finish_reason,
            model_id=response.model,
        )


def _classify_error(exc: Exception, prefix: str) -> OpenAIModelError:
    """Map an SDK exception to an OpenAIModelError with an error class."""
    try:
        import openai as _openai
    except ImportError:
        return OpenAIModelError("unknown", f"{prefix}: {exc}")

    for attr, error_class, label in (
        ("RateLimitError", "rate_limit", "rate limited"),
        ("AuthenticationError", "auth", "auth failed"),
        ("APITimeoutError", "timeout", "timeout"),
    ):
        exc_type = getattr(_openai, attr, None)
        if isinstance(exc_type, type) and isinstance(exc, exc_type):
            return OpenAIModelError(error_class, f"{prefix}: {label}: {exc}")

    api_status = getattr(_openai, "APIStatusError", None)
    if isinstance(api_status, type) and isinstance(exc, api_status):
        code = getattr(exc, "status_code", "?")
        return OpenAIModelError("server", f"{prefix}: API error ({code}): {exc}")

    return OpenAIModelError("unknown", f"{prefix}: {exc}")
