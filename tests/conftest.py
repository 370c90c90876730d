"""
Pytest configuration and shared fixtures for testing.
Provides settings overrides, FAQ data, history stores, fake providers and
a fake Redis client.
"""
import asyncio
import json
import os
from typing import Any, Dict, List, Optional, Sequence

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError

# Set testing environment before importing the app
os.environ["ENVIRONMENT"] = "testing"
os.environ["ENABLE_TELEMETRY"] = "false"
os.environ["HISTORY_STORE_TYPE"] = "in_memory"

from support_relay.agents import CustomerSupportAgent, ResponseResolver
from support_relay.config import EscalationSettings, Settings
from support_relay.escalation import EscalationDetector
from support_relay.faq import FAQIndex
from support_relay.llm import TextGenerator, ProviderError, reset_circuit_breakers
from support_relay.models.conversation import Message
from support_relay.session import InMemoryHistoryStore, SessionRegistry


# ===========================
# Settings Fixtures
# ===========================

@pytest.fixture
def test_settings() -> Settings:
    """
    Create test settings instance.
    Short provider timeouts and a single attempt keep failure tests fast.
    """
    return Settings(
        environment="testing",
        debug=True,
        enable_telemetry=False,
        rate_limit_enabled=False,
        history_store_type="in_memory",
        llm_provider="ollama",
        llm_timeout_seconds=0.2,
        llm_max_retries=1,
        llm_circuit_breaker_fail_max=50,
        context_window_messages=10,
        faq_match_threshold=3
    )


@pytest.fixture
def escalation_settings() -> EscalationSettings:
    return EscalationSettings()


@pytest.fixture(autouse=True)
def clean_circuit_breakers():
    """Provider breakers are process-wide; start every test closed."""
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


# ===========================
# FAQ Fixtures
# ===========================

@pytest.fixture
def sample_faq_records() -> List[Dict[str, Any]]:
    return [
        {
            "id": 1,
            "question": "How can I reset my password?",
            "answer": "Visit Settings > Reset Password.",
            "category": "account"
        },
        {
            "id": 2,
            "question": "What is your refund policy?",
            "answer": "Full refunds are available within 30 days of purchase.",
            "category": "billing"
        },
        {
            "id": 3,
            "question": "How long does shipping take?",
            "answer": "Standard shipping takes 3-5 business days.",
            "category": "shipping"
        },
        {
            "id": 4,
            "question": "Do you ship internationally?",
            "answer": "We ship to over 100 countries.",
            "category": "shipping"
        }
    ]


@pytest.fixture
def faq_index(sample_faq_records) -> FAQIndex:
    return FAQIndex.from_records(sample_faq_records)


# ===========================
# History Store Fixtures
# ===========================

@pytest.fixture
async def history_store():
    """Create in-memory history store for testing."""
    store = InMemoryHistoryStore(max_sessions=100, default_ttl=300)
    yield store
    await store.close()


@pytest.fixture
def registry(history_store) -> SessionRegistry:
    return SessionRegistry(history_store)


# ===========================
# Provider Fakes
# ===========================

class FakeTextGenerator(TextGenerator):
    """
    Provider double.

    Records every call. Configure ``error`` to raise, ``delay`` to sleep
    before answering (for timeout tests).
    """

    name = "fake"

    def __init__(
        self,
        reply: str = "Here is some helpful information.",
        error: Optional[Exception] = None,
        delay: float = 0.0
    ):
        super().__init__(model="fake-model")
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def generate(
        self,
        system_instruction: str,
        history: Sequence[Message],
        message: str
    ) -> str:
        self.calls.append({
            "system_instruction": system_instruction,
            "history": list(history),
            "message": message
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def failing_generator() -> FakeTextGenerator:
    return FakeTextGenerator(error=ProviderError("provider exploded", provider="fake"))


@pytest.fixture
def detector(escalation_settings) -> EscalationDetector:
    return EscalationDetector(escalation_settings)


@pytest.fixture
def make_resolver(faq_index, history_store, detector, test_settings):
    """Build a resolver around a given generator."""
    def _make(generator: TextGenerator) -> ResponseResolver:
        return ResponseResolver(faq_index, history_store, detector, generator, test_settings)
    return _make


@pytest.fixture
def resolver(make_resolver, fake_generator) -> ResponseResolver:
    return make_resolver(fake_generator)


@pytest.fixture
def agent(registry, history_store, resolver) -> CustomerSupportAgent:
    return CustomerSupportAgent(registry, history_store, resolver)


# ===========================
# Redis Fakes
# ===========================

class FakeRedisScript:
    """Registered script double applying the append on the fake store."""

    def __init__(self, client: "FakeRedis"):
        self.client = client

    async def __call__(self, keys=None, args=None, client=None):
        self.client.script_calls += 1
        if not self.client.scripting:
            raise ResponseError("unknown command 'EVALSHA'")
        self.client._check_available()

        key = keys[0]
        entry, ttl = args
        try:
            history = json.loads(self.client.data.get(key) or "[]")
        except ValueError:
            history = []
        if not isinstance(history, list):
            history = []
        entry = json.loads(entry)
        if history and history[-1] == entry:
            return self.client.data[key]
        history.append(entry)

        encoded = json.dumps(history)
        self.client.data[key] = encoded
        self.client.ttls[key] = int(ttl)
        return encoded


class FakeRedis:
    """
    Fake redis.asyncio client (no Redis required).
    Implements the subset of commands the history store uses.
    """

    def __init__(self, scripting: bool = True):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.scripting = scripting
        self.available = True
        self.script_calls = 0
        self.closed = False

    def _check_available(self) -> None:
        if not self.available:
            raise RedisConnectionError("Connection refused")

    def register_script(self, script: str) -> FakeRedisScript:
        return FakeRedisScript(self)

    async def get(self, key: str) -> Optional[str]:
        self._check_available()
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self._check_available()
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = int(ex)
        return True

    async def delete(self, *keys: str) -> int:
        self._check_available()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def ttl(self, key: str) -> int:
        self._check_available()
        if key not in self.data:
            return -2
        return self.ttls.get(key, -1)

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None):
        self._check_available()
        prefix, _, suffix = (match or "*").partition("*")
        for key in list(self.data.keys()):
            if key.startswith(prefix) and key.endswith(suffix):
                yield key

    async def info(self, section: Optional[str] = None) -> Dict[str, Any]:
        self._check_available()
        return {"used_memory_human": "1.00M"}

    async def ping(self) -> bool:
        self._check_available()
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
