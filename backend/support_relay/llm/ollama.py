"""
Ollama text generator.
Local model backend via the Ollama chat endpoint.
"""
import logging
from typing import Any, Dict, Sequence

from .base import TextGenerator, ProviderResponseError
from ..models.conversation import Message

logger = logging.getLogger(__name__)


class OllamaTextGenerator(TextGenerator):
    """Local text generation through an Ollama server."""

    name = "ollama"

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1",
        **kwargs
    ):
        super().__init__(model=model, **kwargs)
        self.host = host.rstrip('/')

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
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens
            }
        }

    async def generate(
        self,
        system_instruction: str,
        history: Sequence[Message],
        message: str
    ) -> str:
        data = await self._post_json(
            f"{self.host}/api/chat",
            self.build_payload(system_instruction, history, message)
        )

        try:
            text = data["message"]["content"]
        except (KeyError, TypeError) as e:
            raise ProviderResponseError(
                f"Unexpected Ollama response shape: {e}",
                provider=self.name
            )

        if not text or not text.strip():
            raise ProviderResponseError("Ollama returned an empty reply", provider=self.name)
        return text


__all__ = ['OllamaTextGenerator']
