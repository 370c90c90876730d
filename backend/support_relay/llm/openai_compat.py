"""
OpenAI-compatible text generator.
Works with any endpoint implementing the chat/completions contract.
"""
import logging
from typing import Any, Dict, Sequence

from .base import TextGenerator, ProviderResponseError
from ..models.conversation import Message

logger = logging.getLogger(__name__)


class OpenAITextGenerator(TextGenerator):
    """Text generation through an OpenAI-compatible chat completions API."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        api_url: str = "https://api.openai.com/v1/chat/completions",
        **kwargs
    ):
        super().__init__(model=model, **kwargs)
        if not api_key:
            raise ValueError("OpenAI API key is required")
        self.api_key = api_key
        self.api_url = api_url

    def build_payload(
        self,
        system_instruction: str,
        history: Sequence[Message],
        message: str
    ) -> Dict[str, Any]:
        messages = [{"role": "system", "content": system_instruction}]
        messages.extend(m.to_provider_turn() for m in history)
        messages.append({"role": "user", "content": message})

        return {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens
        }

    async def generate(
        self,
        system_instruction: str,
        history: Sequence[Message],
        message: str
    ) -> str:
        data = await self._post_json(
            self.api_url,
            self.build_payload(system_instruction, history, message),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json"
            }
        )

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderResponseError(
                f"Unexpected chat completions response shape: {e}",
                provider=self.name
            )

        if not text or not text.strip():
            raise ProviderResponseError("Provider returned an empty reply", provider=self.name)
        return text


__all__ = ['OpenAITextGenerator']
