"""
Text generation wrapper for writing assistants.

The assistants' prompts live outside the core; this wrapper only runs a
prompt against the configured model and reports the outcome as a tagged
result instead of raising.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from gigmarket.protocols import ModelMessage, ModelProtocol

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Result of a text generation request."""

    success: bool
    text: Optional[str] = None
    error: Optional[str] = None
    model_id: Optional[str] = None

    @classmethod
    def ok(cls, text: str, model_id: Optional[str] = None) -> "GenerationResult":
        return cls(success=True, text=text, model_id=model_id)

    @classmethod
    def failed(cls, error: str, model_id: Optional[str] = None) -> "GenerationResult":
        return cls(success=False, error=error, model_id=model_id)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "text": self.text,
            "error": self.error,
            "model_id": self.model_id,
        }


class TextAssistant:
    """Runs free-form generation requests against a model."""

    def __init__(self, model: Optional[ModelProtocol] = None, max_tokens: int = 1024):
        self.model = model
        self.max_tokens = max_tokens

    def generate(self, prompt: str, system: Optional[str] = None) -> GenerationResult:
        if not prompt or not prompt.strip():
            return GenerationResult.failed("Prompt cannot be empty")
        if self.model is None:
            return GenerationResult.failed("No text model configured")

        model_id = self.model.model_id
        try:
            response = self.model.generate(
                [ModelMessage(role="user", content=prompt)],
                max_tokens=self.max_tokens,
                system=system,
            )
        except Exception as e:
            logger.warning(f"Text generation failed on {model_id}: {e}", exc_info=True)
            return GenerationResult.failed(str(e) or type(e).__name__, model_id=model_id)

        text = (response.content or "").strip()
        if not text:
            return GenerationResult.failed("Model returned no text", model_id=model_id)
        return GenerationResult.ok(text, model_id=response.model_id or model_id)
