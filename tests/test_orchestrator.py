"""
Tests for the orchestrator's routing and intent-shift handling.

Run with:
$ pytest -q
"""

import asyncio

import pytest

from concierge.agent.factory import build_orchestrator
from concierge.agent.orchestrator import (
    AMBIGUOUS_INTENT_REPLY,
    INTENT_SHIFT_UNRESOLVED_REPLY,
    Orchestrator,
)
from concierge.agent.task_agent import (
    RETRY_EXHAUSTED_MESSAGE,
    ScopeError,
)
from concierge.core.schema import (
    FunctionCall,
    ResponseValidationError,
)
from fakes import (
    FakeProtocolClient,
    FakeProvider,
    RecordingObserver,
    calls,
    text,
)

QUERY = "What is the refund policy?"
CLASSIFIED_FAQ = {
    "type": "intent_classification",
    "recognized_intent": "faq",
    "user_query": QUERY,
}
ANSWER = {"type": "response", "content": "Refunds are accepted within 30 days."}


def _build(
    provider: FakeProvider, client: FakeProtocolClient | None = None, observer=None
) -> Orchestrator:
    return asyncio.run(build_orchestrator(client or FakeProtocolClient(), provider, observer))


def test_refund_policy_scenario() -> None:
    """Classify, scope, search, fetch the document, then return the answer text."""

    provider = FakeProvider(
        [
            text(CLASSIFIED_FAQ),
            calls(FunctionCall(name="search_knowledge", arguments={"query": "refund policy"})),
            calls(
                FunctionCall(name="get_knowledge_base_document", arguments={"uri": "kb://refunds"})
            ),
            text(ANSWER),
        ]
    )
    client = FakeProtocolClient(resources={"kb://refunds": "Refunds within 30 days."})
    observer = RecordingObserver()
    orchestrator = _build(provider, client, observer)

    reply = asyncio.run(orchestrator.handle_query(QUERY))

    assert reply == ANSWER["content"]
    assert orchestrator.active_intent == "faq"
    assert "The user intent is: faq." in provider.requests[1]["system_prompt"]
    assert observer.events == [
        ("calling tool", "search_knowledge", '{"query": "refund policy"}'),
        ("fetching document", "kb://refunds"),
    ]


def test_classified_user_query_is_forwarded() -> None:
    """The task agent should receive the classifier's restated query."""

    provider = FakeProvider(
        [
            text({**CLASSIFIED_FAQ, "user_query": "I want to know the refund policy."}),
            text(ANSWER),
        ]
    )
    orchestrator = _build(provider)

    asyncio.run(orchestrator.handle_query("refunds?"))

    task_history = provider.requests[1]["history"]
    assert task_history[0].parts[0].text == "I want to know the refund policy."


def test_clarify_twice_then_ambiguous() -> None:
    """Two questions then ambiguous should return the placeholder with no intent set."""

    provider = FakeProvider(
        [
            text({"type": "clarifying_question", "content": "Refund or ticket?"}),
            text({"type": "clarifying_question", "content": "Which order?"}),
            text({"type": "intent_classification", "recognized_intent": "ambiguous"}),
            text({"type": "clarifying_question", "content": "How can I help?"}),
        ]
    )
    orchestrator = _build(provider)

    assert asyncio.run(orchestrator.handle_query("help")) == "Refund or ticket?"
    assert orchestrator.active_intent is None
    assert asyncio.run(orchestrator.handle_query("not sure")) == "Which order?"
    assert asyncio.run(orchestrator.handle_query("whatever")) == AMBIGUOUS_INTENT_REPLY
    assert orchestrator.active_intent is None

    # Ambiguous is terminal: the next classification starts from a blank history
    asyncio.run(orchestrator.handle_query("start over"))
    assert len(provider.requests[3]["history"]) == 1


def test_active_intent_skips_classification() -> None:
    """With an active intent, later queries should go straight to the task agent."""

    provider = FakeProvider([text(CLASSIFIED_FAQ), text(ANSWER), text(ANSWER)])
    orchestrator = _build(provider)

    asyncio.run(orchestrator.handle_query(QUERY))
    asyncio.run(orchestrator.handle_query("And for sale items?"))

    assert len(provider.requests) == 3
    assert provider.requests[2]["response_format"] is None
    assert provider.requests[2]["history"][-1].parts[0].text == "And for sale items?"


def test_task_error_message_is_returned() -> None:
    """A task error should surface as its message, keeping the intent."""

    provider = FakeProvider([text(CLASSIFIED_FAQ)], repeat=text("not json"))
    orchestrator = _build(provider)

    assert asyncio.run(orchestrator.handle_query(QUERY)) == RETRY_EXHAUSTED_MESSAGE
    assert orchestrator.active_intent == "faq"


def test_intent_shift_reclassifies_original_query() -> None:
    """An intent shift should clear the intent and resubmit the same query to the classifier."""

    provider = FakeProvider(
        [
            text(CLASSIFIED_FAQ),
            text(ANSWER),
            text({"type": "intent_shift_detected", "reason": "needs a support ticket"}),
            text(
                {
                    "type": "intent_classification",
                    "recognized_intent": "support",
                    "user_query": "I want to open a ticket.",
                }
            ),
            text({"type": "response", "content": "Ticket opened."}),
        ]
    )
    orchestrator = _build(provider)
    asyncio.run(orchestrator.handle_query(QUERY))

    reply = asyncio.run(orchestrator.handle_query("Open a ticket for order 7"))

    assert reply == "Ticket opened."
    assert orchestrator.active_intent == "support"
    reclassify = provider.requests[3]
    assert reclassify["response_format"] == "json"
    assert reclassify["history"][-1].parts[0].text == "Open a ticket for order 7"
    # The task agent keeps its history across the switch, with a marker turn
    task_texts = [
        part.text
        for turn in provider.requests[4]["history"]
        for part in turn.parts
        if hasattr(part, "text")
    ]
    assert any("'faq' to 'support'" in entry for entry in task_texts)


def test_intent_shift_to_clarifying_question() -> None:
    """Re-classification should get the user's own words, not the restated query."""

    provider = FakeProvider(
        [
            text({**CLASSIFIED_FAQ, "user_query": "Tell me about refunds."}),
            text({"type": "intent_shift_detected", "reason": "out of scope"}),
            text({"type": "clarifying_question", "content": "What do you need?"}),
        ]
    )
    orchestrator = _build(provider)

    assert asyncio.run(orchestrator.handle_query(QUERY)) == "What do you need?"
    assert orchestrator.active_intent is None
    assert provider.requests[1]["history"][-1].parts[0].text == "Tell me about refunds."
    assert [turn.parts[0].text for turn in provider.requests[2]["history"]] == [QUERY]


def test_classified_intent_name_is_normalised() -> None:
    """Whitespace around the classified name should not leak into the active intent."""

    provider = FakeProvider([text({**CLASSIFIED_FAQ, "recognized_intent": " faq "}), text(ANSWER)])
    orchestrator = _build(provider)

    asyncio.run(orchestrator.handle_query(QUERY))

    assert orchestrator.active_intent == "faq"


def test_second_intent_shift_stops() -> None:
    """Only one re-classification should happen per query."""

    shift = text({"type": "intent_shift_detected", "reason": "out of scope"})
    provider = FakeProvider([text(CLASSIFIED_FAQ), shift, text(CLASSIFIED_FAQ), shift])
    orchestrator = _build(provider)

    assert asyncio.run(orchestrator.handle_query(QUERY)) == INTENT_SHIFT_UNRESOLVED_REPLY
    assert orchestrator.active_intent is None
    assert len(provider.requests) == 4


def test_unknown_classified_intent_raises() -> None:
    """A classification naming an unregistered intent should raise and set no intent."""

    provider = FakeProvider([text({**CLASSIFIED_FAQ, "recognized_intent": "billing"})])
    orchestrator = _build(provider)

    with pytest.raises(ScopeError):
        asyncio.run(orchestrator.handle_query(QUERY))
    assert orchestrator.active_intent is None


def test_classifier_failure_propagates() -> None:
    """Invalid classifier output should reach the caller."""

    orchestrator = _build(FakeProvider([text("I think you want faq")]))
    with pytest.raises(ResponseValidationError):
        asyncio.run(orchestrator.handle_query(QUERY))


def test_failing_subscriber_does_not_block_others() -> None:
    """Event fan-out should skip a subscriber that raises."""

    class Broken:
        def on_fetching_document(self, uri: str) -> None:
            raise RuntimeError("boom")

        def on_calling_tool(self, name: str, args_json: str) -> None:
            raise RuntimeError("boom")

    provider = FakeProvider(
        [
            text(CLASSIFIED_FAQ),
            calls(FunctionCall(name="search_knowledge", arguments={})),
            text(ANSWER),
        ]
    )
    orchestrator = _build(provider)
    recorder = RecordingObserver()
    orchestrator.subscribe(Broken())
    orchestrator.subscribe(recorder)

    assert asyncio.run(orchestrator.handle_query(QUERY)) == ANSWER["content"]
    assert recorder.events == [("calling tool", "search_knowledge", "{}")]
