"""Append-only conversation history owned by a single agent."""

from typing import (
    Any,
    Dict,
    Iterator,
    List,
)

from concierge.core.schema import (
    FunctionCall,
    FunctionCallPart,
    FunctionResponse,
    FunctionResponsePart,
    TextPart,
    Turn,
)


class ConversationHistory:
    """
    Ordered sequence of :class:`Turn` objects.

    Turns are only ever appended.  The one exception is :meth:`clear`, which the intent agent uses
    to start each classification round from a blank scratch context.
    """

    def __init__(self) -> None:
        self._turns: List[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    @property
    def turns(self) -> List[Turn]:
        """A snapshot of the turns, safe to hand to a provider."""
        return list(self._turns)

    def add_user_text(self, text: str) -> None:
        self._turns.append(Turn(role="user", parts=[TextPart(text=text)]))

    def add_model_text(self, text: str) -> None:
        self._turns.append(Turn(role="model", parts=[TextPart(text=text)]))

    def add_function_call(self, call_id: str, name: str, arguments: Dict[str, Any]) -> None:
        call = FunctionCall(name=name, arguments=arguments, id=call_id)
        self._turns.append(Turn(role="model", parts=[FunctionCallPart(function_call=call)]))

    def add_function_response(self, call_id: str, name: str, result: str) -> None:
        response = FunctionResponse(name=name, id=call_id, result=result)
        self._turns.append(
            Turn(role="user", parts=[FunctionResponsePart(function_response=response)])
        )

    def clear(self) -> None:
        self._turns.clear()
