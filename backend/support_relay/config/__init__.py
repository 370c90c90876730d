"""
Application configuration.
Loads settings from environment variables and an optional .env file.

Version: 1.0.0
"""
import logging
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .escalation_settings import EscalationSettings, get_escalation_settings

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class HistoryStoreType(str, Enum):
    """History store backend."""
    IN_MEMORY = "in_memory"
    REDIS = "redis"


class LLMProvider(str, Enum):
    """Text-generation provider."""
    GEMINI = "gemini"
    OLLAMA = "ollama"
    OPENAI = "openai"


class Settings(BaseSettings):
    """
    Application settings.

    Every field can be overridden with an environment variable of the same
    name (case-insensitive), e.g. ``LLM_PROVIDER=ollama``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================
    # Application
    # ===========================

    app_name: str = Field(default="Customer Support Chat Relay")
    app_version: str = Field(default="1.0.0")
    environment: Environment = Field(default=Environment.DEVELOPMENT)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3000, ge=1, le=65535)
    api_prefix: str = Field(default="/api")

    cors_origins: Union[List[str], str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=False)

    rate_limit_enabled: bool = Field(default=False)
    rate_limit_requests: int = Field(default=100, ge=1)
    rate_limit_period: int = Field(default=60, ge=1)
    # Only enable behind a proxy that overwrites X-Forwarded-For
    rate_limit_trust_forwarded: bool = Field(default=False)

    enable_telemetry: bool = Field(default=True)

    # ===========================
    # FAQ
    # ===========================

    faq_data_path: str = Field(
        default="",
        description="Path to FAQ JSON file (empty = bundled data/faqs.json)"
    )

    faq_match_threshold: int = Field(
        default=3,
        ge=1,
        description="Minimum relevance score for a direct FAQ answer"
    )

    # ===========================
    # Conversation History
    # ===========================

    history_store_type: HistoryStoreType = Field(default=HistoryStoreType.IN_MEMORY)

    history_ttl_seconds: int = Field(
        default=86400,
        ge=60,
        description="History TTL, refreshed on every write"
    )

    history_key_prefix: str = Field(default="session:")

    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_max_connections: int = Field(default=50, ge=1)
    redis_socket_timeout: int = Field(default=5, ge=1)
    redis_socket_connect_timeout: int = Field(default=5, ge=1)
    # Client-level resend on timeout can replay a history append
    redis_retry_on_timeout: bool = Field(default=False)
    redis_health_check_interval: int = Field(default=30, ge=0)

    # ===========================
    # Sessions
    # ===========================

    session_max_age_seconds: int = Field(
        default=86400,
        ge=60,
        description="Registry entries idle longer than this are swept"
    )

    session_cleanup_interval_seconds: int = Field(
        default=3600,
        ge=1,
        description="Interval of the background session sweep"
    )

    # ===========================
    # Resolver
    # ===========================

    context_window_messages: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Number of most recent messages passed to the provider"
    )

    # ===========================
    # LLM Provider
    # ===========================

    llm_provider: Optional[LLMProvider] = Field(
        default=None,
        description="Explicit provider; None = gemini if GEMINI_API_KEY is set, else ollama"
    )

    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=300, ge=1)
    llm_timeout_seconds: float = Field(default=30.0, gt=0)
    llm_max_retries: int = Field(default=2, ge=1, le=10)
    llm_circuit_breaker_fail_max: int = Field(default=5, ge=1)
    llm_circuit_breaker_timeout: int = Field(default=60, ge=1)

    gemini_api_key: Optional[SecretStr] = Field(default=None)
    gemini_model: str = Field(default="gemini-1.5-flash")
    gemini_api_base: str = Field(default="https://generativelanguage.googleapis.com/v1beta")

    ollama_host: str = Field(default="http://localhost:11434")
    ollama_model: str = Field(default="llama3.1")

    openai_api_key: Optional[SecretStr] = Field(default=None)
    openai_api_url: str = Field(default="https://api.openai.com/v1/chat/completions")
    openai_model: str = Field(default="gpt-3.5-turbo")

    # ===========================
    # Validators
    # ===========================

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Accept JSON lists or comma-separated origins."""
        if v is None:
            return ["*"]

        if isinstance(v, str):
            import json
            if v.startswith('['):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(',') if origin.strip()]

        return v

    @field_validator('gemini_api_key', 'openai_api_key', mode='before')
    @classmethod
    def empty_key_is_none(cls, v):
        """Treat an empty API key as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('api_prefix')
    @classmethod
    def normalize_api_prefix(cls, v: str) -> str:
        """Ensure prefix starts with a slash and has no trailing slash."""
        v = v.strip()
        if not v:
            return ""
        if not v.startswith('/'):
            v = '/' + v
        return v.rstrip('/')

    # ===========================
    # Helpers
    # ===========================

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING

    def resolved_llm_provider(self) -> LLMProvider:
        """
        Provider selected at startup.

        Returns:
            Explicit provider if configured, otherwise gemini when a Gemini
            key is present, otherwise the local ollama backend.
        """
        if self.llm_provider is not None:
            return self.llm_provider
        if self.gemini_api_key is not None:
            return LLMProvider.GEMINI
        return LLMProvider.OLLAMA

    def get_gemini_api_key(self) -> Optional[str]:
        if self.gemini_api_key:
            return self.gemini_api_key.get_secret_value()
        return None

    def get_openai_api_key(self) -> Optional[str]:
        if self.openai_api_key:
            return self.openai_api_key.get_secret_value()
        return None

    def validate_configuration(self) -> List[str]:
        """
        Check for inconsistent settings.

        Returns:
            List of configuration warnings
        """
        warnings = []
        provider = self.resolved_llm_provider()

        if provider == LLMProvider.GEMINI and not self.gemini_api_key:
            warnings.append("LLM provider is gemini but GEMINI_API_KEY is not set")

        if provider == LLMProvider.OPENAI and not self.openai_api_key:
            warnings.append("LLM provider is openai but OPENAI_API_KEY is not set")

        if self.is_production and self.history_store_type == HistoryStoreType.IN_MEMORY:
            warnings.append("In-memory history store used in production; history is lost on restart")

        if self.is_production and self.debug:
            warnings.append("Debug mode enabled in production")

        return warnings

    def get_safe_dict(self) -> Dict[str, Any]:
        """Settings as a dict with secrets masked, for logging."""
        data = self.model_dump()
        for key in ('gemini_api_key', 'openai_api_key'):
            if data.get(key) is not None:
                data[key] = "***"
        return data


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

__all__ = [
    'Settings',
    'Environment',
    'HistoryStoreType',
    'LLMProvider',
    'EscalationSettings',
    'settings',
    'get_settings',
    'get_escalation_settings'
]
