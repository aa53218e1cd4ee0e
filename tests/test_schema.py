"""
Tests for the structured response parsers and config resource loaders.

Run with:
$ pytest -q
"""

import asyncio
import json

import pytest

from concierge.core.resources import (
    ConfigError,
    load_intents,
    load_persona,
)
from concierge.core.schema import (
    AmbiguousClassification,
    ClarifyingQuestion,
    IntentClassification,
    IntentShiftDetected,
    ResourceReadResult,
    ResponseValidationError,
    TaskError,
    TaskResponse,
    parse_intent_response,
    parse_task_response,
)
from fakes import FakeProtocolClient


def test_parse_clarifying_question() -> None:
    """A clarifying question should parse to its own variant."""

    result = parse_intent_response('{"type": "clarifying_question", "content": "Which order?"}')
    assert isinstance(result, ClarifyingQuestion)
    assert result.content == "Which order?"


def test_parse_ambiguous_classification() -> None:
    """An ambiguous classification should not require a user query."""

    result = parse_intent_response(
        '{"type": "intent_classification", "recognized_intent": "ambiguous"}'
    )
    assert isinstance(result, AmbiguousClassification)


def test_parse_concrete_classification() -> None:
    """A concrete classification should carry the intent and the restated query."""

    result = parse_intent_response(
        json.dumps(
            {
                "type": "intent_classification",
                "recognized_intent": "faq",
                "user_query": "What is the refund policy?",
            }
        )
    )
    assert isinstance(result, IntentClassification)
    assert result.recognized_intent == "faq"
    assert result.user_query == "What is the refund policy?"


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "",
        '```json\n{"type": "clarifying_question", "content": "?"}\n```',
        '{"type": "intent_classification", "recognized_intent": "faq"}',
        '{"type": "clarifying_question"}',
        '{"type": "response", "content": "hi"}',
        '["clarifying_question"]',
    ],
)
def test_parse_intent_response_rejects_other_shapes(raw: str) -> None:
    """Anything outside the three intent shapes should raise instead of being coerced."""

    with pytest.raises(ResponseValidationError) as info:
        parse_intent_response(raw)
    assert info.value.raw_text == raw


def test_parse_task_response_variants() -> None:
    """Each task response shape should map to its tagged variant."""

    assert isinstance(parse_task_response('{"type": "response", "content": "ok"}'), TaskResponse)
    assert isinstance(parse_task_response('{"type": "error", "message": "no"}'), TaskError)

    shift = parse_task_response(
        '{"type": "intent_shift_detected", "current_intent": "faq", "reason": "needs a ticket"}'
    )
    assert isinstance(shift, IntentShiftDetected)
    assert shift.reason == "needs a ticket"


def test_parse_task_response_rejects_unknown_type() -> None:
    """An unknown ``type`` tag should fail validation."""

    with pytest.raises(ResponseValidationError):
        parse_task_response('{"type": "answer", "content": "ok"}')


def test_load_persona_and_intents() -> None:
    """Well-formed resources should load into typed models."""

    client = FakeProtocolClient()
    persona = asyncio.run(load_persona(client, "config://persona"))
    intents = asyncio.run(load_intents(client, "config://intents"))

    assert persona.name == "Bot"
    assert persona.max_response_tokens == 100
    assert [intent.name for intent in intents] == ["faq", "support"]
    assert intents[0].allowed_tools == ["search_knowledge"]


@pytest.mark.parametrize(
    "payload",
    [
        {"name": "Bot"},
        {"name": "Bot", "system_prompt": "x", "max_response_tokens": 0},
        "not json",
        ResourceReadResult(contents=[]),
    ],
)
def test_load_persona_rejects_bad_payload(payload) -> None:
    """A malformed persona resource should raise *ConfigError*."""

    client = FakeProtocolClient(resources={"config://persona": payload})
    with pytest.raises(ConfigError):
        asyncio.run(load_persona(client, "config://persona"))


def test_load_intents_rejects_bad_payload() -> None:
    """Intents missing ``allowed_tools`` should raise *ConfigError*."""

    client = FakeProtocolClient(
        resources={"config://intents": [{"name": "faq", "description": "answer questions"}]}
    )
    with pytest.raises(ConfigError):
        asyncio.run(load_intents(client, "config://intents"))
