"""
Basic sanity tests for the tool executor and registry.

Run with:
$ pytest -q
"""

import asyncio
import json

import pytest

from concierge.agent.tool_executor import (
    GET_PROMPT_RESULT,
    NO_CONTENT_RESULT,
    ToolExecutor,
    ToolProtocolError,
)
from concierge.core.schema import (
    ContentItem,
    FunctionCall,
    GenericTool,
    ResourceContent,
    ResourceReadResult,
    ToolCallResult,
)
from concierge.tools import (
    ToolRegistry,
    generic_tool_from_external,
    knowledge_document_tool,
    record_schema_tool,
)
from fakes import (
    FakeProtocolClient,
    RecordingObserver,
)


def _registry(client: FakeProtocolClient) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in client.tools:
        registry.register(generic_tool_from_external(tool))
    registry.register(knowledge_document_tool("get_knowledge_base_document"))
    registry.register(record_schema_tool("get_record_schema", "schema://record"))
    return registry


def _executor(client: FakeProtocolClient, observer=None) -> ToolExecutor:
    return ToolExecutor(client, _registry(client), observer)


def test_registry_rejects_duplicates() -> None:
    """Registering the same name twice should raise *ValueError*."""

    registry = ToolRegistry()
    registry.register(GenericTool(name="echo"))
    with pytest.raises(ValueError):
        registry.register(knowledge_document_tool("echo"))


def test_registry_strips_unsupported_schema_keys() -> None:
    """Generic tool schemas should lose ``$schema`` and ``additionalProperties``."""

    client = FakeProtocolClient()
    declaration = generic_tool_from_external(client.tools[0])
    assert declaration.parameters == {
        "type": "object",
        "properties": {"query": {"type": "string"}},
    }


def test_registry_declarations_filter_generic_tools_only() -> None:
    """An allow-list should hide other generic tools but keep the fetch capabilities."""

    registry = _registry(FakeProtocolClient())
    names = [tool.name for tool in registry.declarations(["search_knowledge"])]
    assert names == ["search_knowledge", "get_knowledge_base_document", "get_record_schema"]
    assert len(registry.declarations()) == 4


def test_execute_generic_tool_returns_first_text() -> None:
    """Generic tools should return the first text item and emit a calling-tool event."""

    client = FakeProtocolClient(
        tool_results={
            "search_knowledge": ToolCallResult(
                content=[ContentItem(type="image"), ContentItem(text="kb://refunds.md")]
            )
        }
    )
    observer = RecordingObserver()
    result = asyncio.run(
        _executor(client, observer).execute(
            FunctionCall(name="search_knowledge", arguments={"query": "refund"}, id="1")
        )
    )

    assert result == "kb://refunds.md"
    assert client.tool_calls == [("search_knowledge", {"query": "refund"})]
    assert observer.events == [("calling tool", "search_knowledge", '{"query": "refund"}')]


def test_execute_generic_tool_falls_back_to_structured_content() -> None:
    """Without text content the structured payload should be serialised."""

    client = FakeProtocolClient(
        tool_results={"create_ticket": ToolCallResult(structured_content={"ticket": 42})}
    )
    result = asyncio.run(
        _executor(client).execute(FunctionCall(name="create_ticket", arguments={}))
    )
    assert json.loads(result) == {"ticket": 42}


def test_execute_document_fetch_formats_each_part() -> None:
    """Document fetches should emit an event and join ``uri\\ntext`` parts with a blank line."""

    client = FakeProtocolClient(
        resources={
            "kb://refunds.md": ResourceReadResult(
                contents=[
                    ResourceContent(uri="kb://refunds.md", text="Refunds within 30 days."),
                    ResourceContent(uri="kb://refunds.md#2", text="Keep your receipt."),
                ]
            )
        }
    )
    observer = RecordingObserver()
    result = asyncio.run(
        _executor(client, observer).execute(
            FunctionCall(name="get_knowledge_base_document", arguments={"uri": "kb://refunds.md"})
        )
    )

    assert result == (
        "kb://refunds.md\nRefunds within 30 days.\n\nkb://refunds.md#2\nKeep your receipt."
    )
    assert observer.events == [("fetching document", "kb://refunds.md")]
    assert client.tool_calls == []


def test_execute_schema_fetch_returns_text_verbatim() -> None:
    """The schema capability should read its fixed resource without any arguments."""

    client = FakeProtocolClient()
    result = asyncio.run(
        _executor(client).execute(FunctionCall(name="get_record_schema", arguments={}))
    )
    assert result == '{"type": "object"}'
    assert client.reads == ["schema://record"]


def test_execute_schema_fetch_without_text() -> None:
    """An empty schema resource should yield the fixed fallback."""

    client = FakeProtocolClient(resources={"schema://record": ResourceReadResult(contents=[])})
    result = asyncio.run(
        _executor(client).execute(FunctionCall(name="get_record_schema", arguments={}))
    )
    assert result == NO_CONTENT_RESULT


def test_execute_get_prompt_is_a_stub() -> None:
    """``get_prompt`` should return a placeholder without touching the client."""

    client = FakeProtocolClient()
    result = asyncio.run(
        _executor(client).execute(FunctionCall(name="get_prompt", arguments={"name": "x"}))
    )
    assert result == GET_PROMPT_RESULT
    assert client.tool_calls == []
    assert client.reads == []


def test_execute_refuses_tool_outside_permitted_set() -> None:
    """A generic tool outside *permitted* should not be invoked."""

    client = FakeProtocolClient()
    result = asyncio.run(
        _executor(client).execute(
            FunctionCall(name="create_ticket", arguments={}), permitted={"search_knowledge"}
        )
    )
    assert "not allowed" in result
    assert client.tool_calls == []


@pytest.mark.parametrize(
    "call",
    [
        FunctionCall(name=None, arguments={}),
        FunctionCall(name="", arguments={}),
        FunctionCall(name="search_knowledge", arguments=None),
    ],
)
def test_execute_malformed_call(call: FunctionCall) -> None:
    """Calls missing a name or arguments should raise *ToolProtocolError*."""

    with pytest.raises(ToolProtocolError):
        asyncio.run(_executor(FakeProtocolClient()).execute(call))


def test_observer_failure_does_not_abort_call() -> None:
    """An observer that raises should not stop the tool from running."""

    class Broken:
        def on_fetching_document(self, uri: str) -> None:
            raise RuntimeError("boom")

        def on_calling_tool(self, name: str, args_json: str) -> None:
            raise RuntimeError("boom")

    client = FakeProtocolClient()
    result = asyncio.run(
        _executor(client, Broken()).execute(FunctionCall(name="search_knowledge", arguments={}))
    )
    assert result == "search_knowledge result"
