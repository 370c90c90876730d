"""
Text-generation providers.
Adapters are selected once at startup from configuration.

Version: 1.0.0
"""
import logging

from .base import (
    TextGenerator,
    ProviderError,
    ProviderTimeoutError,
    ProviderConnectionError,
    ProviderResponseError
)
from .gemini import GeminiTextGenerator
from .ollama import OllamaTextGenerator
from .openai_compat import OpenAITextGenerator
from .call_wrapper import (
    call_provider,
    CircuitBreakerConfig,
    ProviderRetryConfig,
    ProviderUnavailableError,
    reset_circuit_breakers
)

logger = logging.getLogger(__name__)


def create_text_generator(settings) -> TextGenerator:
    """
    Build the provider adapter selected by configuration.

    Selection: explicit ``LLM_PROVIDER``, else gemini when a Gemini API key
    is set, else the local ollama backend.

    Args:
        settings: Application settings

    Returns:
        TextGenerator instance

    Raises:
        ValueError: If the selected provider is missing its API key
    """
    from ..config import LLMProvider

    provider = settings.resolved_llm_provider()
    common = {
        "temperature": settings.llm_temperature,
        "max_tokens": settings.llm_max_tokens,
        "request_timeout": settings.llm_timeout_seconds
    }

    if provider == LLMProvider.GEMINI:
        generator = GeminiTextGenerator(
            api_key=settings.get_gemini_api_key(),
            model=settings.gemini_model,
            api_base=settings.gemini_api_base,
            **common
        )
    elif provider == LLMProvider.OPENAI:
        generator = OpenAITextGenerator(
            api_key=settings.get_openai_api_key(),
            model=settings.openai_model,
            api_url=settings.openai_api_url,
            **common
        )
    else:
        generator = OllamaTextGenerator(
            host=settings.ollama_host,
            model=settings.ollama_model,
            **common
        )

    logger.info(f"Text generator selected: {generator.name} (model: {generator.model})")
    return generator


__all__ = [
    'TextGenerator',
    'GeminiTextGenerator',
    'OllamaTextGenerator',
    'OpenAITextGenerator',
    'ProviderError',
    'ProviderTimeoutError',
    'ProviderConnectionError',
    'ProviderResponseError',
    'ProviderUnavailableError',
    'CircuitBreakerConfig',
    'ProviderRetryConfig',
    'call_provider',
    'create_text_generator',
    'reset_circuit_breakers'
]
