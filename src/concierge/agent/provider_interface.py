"""
Completion provider interface for Concierge.

This module is the only place that *directly* calls an LLM.  Everything else (agents, tools,
orchestrator) works with the provider-neutral :class:`Turn` / :class:`Completion` models.

We support two back-ends out of the box:

1. **OpenAI** chat completions with function tools.
2. **Anthropic** messages with ``tool_use`` / ``tool_result`` blocks.

Additional providers can be added by subclassing :class:`BaseCompletionProvider` and registering
via :func:`register_provider`.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Sequence,
    Type,
)

from concierge.config import settings
from concierge.core.schema import (
    Completion,
    FunctionCall,
    FunctionCallPart,
    FunctionResponsePart,
    TextPart,
    ToolDeclaration,
    Turn,
)

logger = logging.getLogger(__name__)

ResponseFormat = Literal["json"]


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PROVIDER_REGISTRY: dict[str, Type["BaseCompletionProvider"]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register a provider class under *name*."""

    def wrapper(cls: Type["BaseCompletionProvider"]) -> Type["BaseCompletionProvider"]:
        _PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_provider(name: str | None = None) -> "BaseCompletionProvider":
    """
    Factory that returns an instantiated provider.

    Fallback order:
    1. *name* arg
    2. ``settings.PROVIDER`` env option
    """

    target = name or settings.PROVIDER
    cls = _PROVIDER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Provider '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseCompletionProvider(ABC):
    """Abstract provider: history + tools + system prompt -> text and/or function calls."""

    @abstractmethod
    async def submit(
        self,
        history: Sequence[Turn],
        tools: Sequence[ToolDeclaration],
        system_prompt: str | None,
        response_format: Optional[ResponseFormat] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        """Request one completion for *history*."""


def _parse_arguments(raw: str | None, name: str) -> Optional[Dict[str, Any]]:
    """Decode JSON function arguments; ``None`` marks them as missing."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Function call '%s' carried undecodable arguments: %s", name, raw)
        return None
    return parsed if isinstance(parsed, dict) else None


# ---------------------------------------------------------------------------
# Concrete providers
# ---------------------------------------------------------------------------
@register_provider("openai")
class OpenAIProvider(BaseCompletionProvider):
    """OpenAI chat-completions provider."""

    def __init__(self, client: Any = None, model: str | None = None) -> None:
        if client is None:
            import openai  # pylint: disable=import-outside-toplevel

            client = openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self._client = client
        self._model = model or settings.OPENAI_MODEL

    @staticmethod
    def to_messages(history: Sequence[Turn], system_prompt: str | None) -> List[Dict[str, Any]]:
        """Translate *history* into chat-completions messages."""
        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        for turn in history:
            for part in turn.parts:
                if isinstance(part, TextPart):
                    role = "assistant" if turn.role == "model" else "user"
                    messages.append({"role": role, "content": part.text})
                elif isinstance(part, FunctionCallPart):
                    call = part.function_call
                    messages.append(
                        {
                            "role": "assistant",
                            "content": None,
                            "tool_calls": [
                                {
                                    "id": call.id,
                                    "type": "function",
                                    "function": {
                                        "name": call.name,
                                        "arguments": json.dumps(call.arguments or {}),
                                    },
                                }
                            ],
                        }
                    )
                elif isinstance(part, FunctionResponsePart):
                    response = part.function_response
                    messages.append(
                        {"role": "tool", "tool_call_id": response.id, "content": response.result}
                    )
        return messages

    @staticmethod
    def to_tools(tools: Sequence[ToolDeclaration]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description or "",
                    "parameters": tool.parameters or {"type": "object", "properties": {}},
                },
            }
            for tool in tools
        ]

    async def submit(
        self,
        history: Sequence[Turn],
        tools: Sequence[ToolDeclaration],
        system_prompt: str | None,
        response_format: Optional[ResponseFormat] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        kwargs: Dict[str, Any] = {
            "model": self._model,
            "messages": self.to_messages(history, system_prompt),
            "temperature": 0.2,
        }
        if tools:
            kwargs["tools"] = self.to_tools(tools)
        if response_format == "json":
            kwargs["response_format"] = {"type": "json_object"}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        resp = await self._client.chat.completions.create(**kwargs)
        message = resp.choices[0].message
        logger.debug("OpenAI provider response: %s", message)

        calls = [
            FunctionCall(
                name=tool_call.function.name,
                arguments=_parse_arguments(tool_call.function.arguments, tool_call.function.name),
                id=tool_call.id,
            )
            for tool_call in message.tool_calls or []
        ]
        return Completion(text=message.content, function_calls=calls)


@register_provider("anthropic")
class AnthropicProvider(BaseCompletionProvider):
    """Anthropic Claude messages provider."""

    def __init__(self, client: Any = None, model: str | None = None) -> None:
        if client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        self._client = client
        self._model = model or settings.ANTHROPIC_MODEL

    @staticmethod
    def to_messages(history: Sequence[Turn]) -> List[Dict[str, Any]]:
        """
        Translate *history* into Anthropic messages.

        Consecutive turns with the same role are merged into one message, so a tool result and a
        corrective instruction end up in the same user message.
        """
        messages: List[Dict[str, Any]] = []
        for turn in history:
            role = "assistant" if turn.role == "model" else "user"
            blocks: List[Dict[str, Any]] = []
            for part in turn.parts:
                if isinstance(part, TextPart):
                    blocks.append({"type": "text", "text": part.text})
                elif isinstance(part, FunctionCallPart):
                    call = part.function_call
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": call.arguments or {},
                        }
                    )
                elif isinstance(part, FunctionResponsePart):
                    response = part.function_response
                    blocks.append(
                        {
                            "type": "tool_result",
                            "tool_use_id": response.id,
                            "content": response.result,
                        }
                    )

            if messages and messages[-1]["role"] == role:
                messages[-1]["content"].extend(blocks)
            else:
                messages.append({"role": role, "content": blocks})
        return messages

    @staticmethod
    def to_tools(tools: Sequence[ToolDeclaration]) -> List[Dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description or "",
                "input_schema": tool.parameters or {"type": "object", "properties": {}},
            }
            for tool in tools
        ]

    async def submit(
        self,
        history: Sequence[Turn],
        tools: Sequence[ToolDeclaration],
        system_prompt: str | None,
        response_format: Optional[ResponseFormat] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        # Anthropic has no JSON response mode; the prompts ask for raw JSON instead.
        kwargs: Dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens or settings.MAX_OUTPUT_TOKENS,
            "messages": self.to_messages(history),
            "temperature": 0.2,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = self.to_tools(tools)

        response = await self._client.messages.create(**kwargs)
        logger.debug("Anthropic provider response: %s", response.content)

        texts: List[str] = []
        calls: List[FunctionCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                arguments = block.input if isinstance(block.input, dict) else None
                calls.append(FunctionCall(name=block.name, arguments=arguments, id=block.id))

        return Completion(text="".join(texts) if texts else None, function_calls=calls)
