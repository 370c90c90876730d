"""
Gemini text generator.
Calls the Generative Language REST API (generateContent).
"""
import logging
from typing import Any, Dict, List, Sequence

from .base import TextGenerator, ProviderResponseError
from ..models.conversation import Message, MessageRole

logger = logging.getLogger(__name__)


class GeminiTextGenerator(TextGenerator):
    """Cloud text generation through Gemini."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        **kwargs
    ):
        super().__init__(model=model, **kwargs)
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.api_key = api_key
        self.api_base = api_base.rstrip('/')

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    def build_payload(
        self,
        system_instruction: str,
        history: Sequence[Message],
        message: str
    ) -> Dict[str, Any]:
        # Gemini names the assistant role "model"
        contents: List[Dict[str, Any]] = [
            {
                "role": "model" if m.role == MessageRole.ASSISTANT else "user",
                "parts": [{"text": m.content}]
            }
            for m in history
        ]
        contents.append({"role": "user", "parts": [{"text": message}]})

        return {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": contents,
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens
            }
        }

    async def generate(
        self,
        system_instruction: str,
        history: Sequence[Message],
        message: str
    ) -> str:
        data = await self._post_json(
            self.endpoint,
            self.build_payload(system_instruction, history, message),
            headers={"x-goog-api-key": self.api_key}
        )
        return self.extract_text(data)

    def extract_text(self, data: Dict[str, Any]) -> str:
        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderResponseError(
                f"Unexpected Gemini response shape: {e}",
                provider=self.name
            )

        if not text.strip():
            raise ProviderResponseError("Gemini returned an empty reply", provider=self.name)
        return text


__all__ = ['GeminiTextGenerator']
