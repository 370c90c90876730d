"""
Tests for the response resolver pipeline.
FAQ lookup, pre-provider hand-off, provider replies and the error fallback.
"""
import pytest

from support_relay.agents.resolver import (
    FALLBACK_RESPONSE,
    HANDOFF_RESPONSE,
    render_history,
    summarize_conversation
)
from support_relay.llm import ProviderResponseError
from support_relay.models.conversation import (
    Confidence,
    EscalationReason,
    Message,
    MessageRole
)

from conftest import FakeTextGenerator

# Shares no word longer than three characters with the sample FAQs
UNMATCHED_QUESTION = "Can you explain warranty coverage?"


async def _seed(store, session_id, roles):
    for i, role in enumerate(roles):
        await store.append(session_id, role, f"{role} message {i}")


# ===========================
# FAQ path
# ===========================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_faq_answer_skips_provider(resolver, fake_generator):
    result = await resolver.resolve("How do I reset my password?", "s1")

    assert result.source == "faq"
    assert result.response_text == "Visit Settings > Reset Password."
    assert result.confidence == Confidence.HIGH
    assert result.needs_escalation is False
    assert result.matched_faq_id == 1
    assert result.faq_matched is True
    assert fake_generator.calls == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_faq_wins_over_escalation_keyword(resolver, fake_generator):
    """An FAQ hit is answered even when the message also contains a keyword."""
    result = await resolver.resolve("I am frustrated, how do I reset my password?", "s1")

    assert result.source == "faq"
    assert fake_generator.calls == []


# ===========================
# Pre-provider hand-off
# ===========================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_keyword_hands_off_without_provider(resolver, fake_generator):
    result = await resolver.resolve("I want to speak to a manager right now", "s1")

    assert result.source == "escalation"
    assert result.response_text == HANDOFF_RESPONSE
    assert result.needs_escalation is True
    assert result.escalation_reason == EscalationReason.CUSTOMER_REQUEST
    assert fake_generator.calls == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_long_repetitive_history_hands_off(resolver, history_store, fake_generator):
    await _seed(history_store, "s1", [
        "user", "assistant", "user", "assistant", "user",
        "user", "assistant", "user", "user"
    ])

    result = await resolver.resolve("Still waiting", "s1")

    assert result.source == "escalation"
    assert result.escalation_reason == EscalationReason.UNRESOLVED_ISSUE
    assert fake_generator.calls == []


# ===========================
# Provider path
# ===========================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_provider_reply_is_medium_confidence(resolver, fake_generator):
    result = await resolver.resolve(UNMATCHED_QUESTION, "s1")

    assert result.source == "fake"
    assert result.response_text == fake_generator.reply
    assert result.confidence == Confidence.MEDIUM
    assert result.needs_escalation is False
    assert len(fake_generator.calls) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_uncertain_reply_requests_escalation(make_resolver):
    generator = FakeTextGenerator(reply="I'm not sure. Let me connect you with a human agent.")
    resolver = make_resolver(generator)

    result = await resolver.resolve(UNMATCHED_QUESTION, "s1")

    assert result.source == "fake"
    assert result.needs_escalation is True
    assert result.confidence == Confidence.LOW
    assert result.escalation_reason is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_system_instruction_carries_history_and_handoff(resolver, history_store, fake_generator):
    await history_store.append("s1", MessageRole.USER, "My order is late")
    await history_store.append("s1", MessageRole.ASSISTANT, "Sorry to hear that")

    await resolver.resolve(UNMATCHED_QUESTION, "s1")

    instruction = fake_generator.calls[0]["system_instruction"]
    assert "User: My order is late" in instruction
    assert "Assistant: Sorry to hear that" in instruction
    assert resolver.detector.handoff_phrase in instruction
    assert fake_generator.calls[0]["message"] == UNMATCHED_QUESTION


@pytest.mark.unit
@pytest.mark.asyncio
async def test_in_flight_user_turn_is_not_repeated(resolver, history_store, fake_generator):
    await history_store.append("s1", MessageRole.USER, UNMATCHED_QUESTION)

    await resolver.resolve(UNMATCHED_QUESTION, "s1", exclude_last_user_turn=True)

    call = fake_generator.calls[0]
    assert call["history"] == []
    assert "(no previous messages)" in call["system_instruction"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unanswered_turn_with_same_text_is_kept(resolver, history_store, fake_generator):
    await history_store.append("s1", MessageRole.USER, UNMATCHED_QUESTION)

    await resolver.resolve(UNMATCHED_QUESTION, "s1")

    sent = fake_generator.calls[0]["history"]
    assert [(m.role, m.content) for m in sent] == [(MessageRole.USER, UNMATCHED_QUESTION)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_context_is_bounded_to_window(resolver, history_store, fake_generator):
    await _seed(history_store, "s1", ["user", "assistant"] * 8)

    await resolver.resolve(UNMATCHED_QUESTION, "s1")

    stored = await history_store.history("s1")
    sent = fake_generator.calls[0]["history"]
    assert len(sent) == resolver.context_window == 10
    assert sent == stored[-10:]


# ===========================
# Failure fallback
# ===========================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_provider_error_falls_back(make_resolver, failing_generator):
    result = await make_resolver(failing_generator).resolve(UNMATCHED_QUESTION, "s1")

    assert result.source == "error"
    assert result.response_text == FALLBACK_RESPONSE
    assert result.needs_escalation is True
    assert result.confidence == Confidence.LOW


@pytest.mark.unit
@pytest.mark.asyncio
async def test_provider_timeout_falls_back(make_resolver):
    slow = FakeTextGenerator(delay=0.5)

    result = await make_resolver(slow).resolve(UNMATCHED_QUESTION, "s1")

    assert result.source == "error"
    assert result.needs_escalation is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unexpected_provider_exception_falls_back(make_resolver):
    broken = FakeTextGenerator(error=RuntimeError("boom"))

    result = await make_resolver(broken).resolve(UNMATCHED_QUESTION, "s1")

    assert result.source == "error"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_history_failure_never_raises(resolver, history_store, monkeypatch):
    async def broken_history(session_id):
        raise RuntimeError("store down")

    monkeypatch.setattr(history_store, "history", broken_history)

    result = await resolver.resolve(UNMATCHED_QUESTION, "s1")

    assert result.source == "error"
    assert result.response_text == FALLBACK_RESPONSE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_server_error_status_falls_back(make_resolver):
    generator = FakeTextGenerator(
        error=ProviderResponseError("HTTP 503", provider="fake", status=503)
    )

    result = await make_resolver(generator).resolve(UNMATCHED_QUESTION, "s1")

    assert result.source == "error"


# ===========================
# Rendering
# ===========================

@pytest.mark.unit
def test_render_history():
    history = [
        Message(role=MessageRole.USER, content="hi"),
        Message(role=MessageRole.ASSISTANT, content="hello"),
    ]
    assert render_history(history) == "User: hi\nAssistant: hello"
    assert render_history([]) == "(no previous messages)"


@pytest.mark.unit
def test_summarize_conversation():
    history = [
        Message(role=MessageRole.USER, content="Where is my order?"),
        Message(role=MessageRole.ASSISTANT, content="Let me check."),
    ]

    summary = summarize_conversation(history)

    assert summary == (
        "Conversation Summary:\n"
        "1. Customer: Where is my order?\n"
        "2. Bot: Let me check.\n"
        "\n"
        "Total messages: 2"
    )


@pytest.mark.unit
def test_summarize_empty_conversation():
    assert summarize_conversation([]) == "No conversation history available."
