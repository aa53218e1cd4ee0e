"""
Schema definitions for provider <-> agent <-> protocol messages.

These data models serve as the contract between the completion provider, the two agents, the
orchestrator and the MCP server.  We keep them separate from runtime logic so they can be imported
anywhere without side-effects.
"""

from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
)

AMBIGUOUS_INTENT = "ambiguous"


class ResponseValidationError(RuntimeError):
    """Raised when model output is not valid JSON or matches none of the expected shapes."""

    def __init__(self, message: str, raw_text: str) -> None:
        super().__init__(message)
        self.raw_text = raw_text


# ---------------------------------------------------------------------------
# Configuration resources
# ---------------------------------------------------------------------------
class Persona(BaseModel):
    """The assistant's base behaviour prompt."""

    name: str
    system_prompt: str
    max_response_tokens: Optional[int] = Field(None, gt=0)


class Intent(BaseModel):
    """A named task scope and the tools it may use."""

    name: str
    description: str
    allowed_tools: List[str]


IntentCollection = TypeAdapter(List[Intent])


# ---------------------------------------------------------------------------
# Conversation turns
# ---------------------------------------------------------------------------
class FunctionCall(BaseModel):
    """A call the model wants resolved before it can answer."""

    name: Optional[str] = None
    arguments: Optional[Dict[str, Any]] = None
    id: Optional[str] = None


class FunctionResponse(BaseModel):
    """The result handed back to the model for a resolved call."""

    name: str
    id: str
    result: str


class TextPart(BaseModel):
    text: str


class FunctionCallPart(BaseModel):
    function_call: FunctionCall


class FunctionResponsePart(BaseModel):
    function_response: FunctionResponse


Part = Union[TextPart, FunctionCallPart, FunctionResponsePart]


class Turn(BaseModel):
    """One entry of an agent's conversation history."""

    role: Literal["user", "model"]
    parts: List[Part]


class Completion(BaseModel):
    """What a completion provider returns for one request."""

    text: Optional[str] = None
    function_calls: List[FunctionCall] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Tool declarations
# ---------------------------------------------------------------------------
class GenericTool(BaseModel):
    """A tool listed by the MCP server and invoked through ``call_tool``."""

    kind: Literal["generic"] = "generic"
    name: str
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ResourceFetch(BaseModel):
    """A capability that reads whichever resource URI the model passes in."""

    kind: Literal["resource_fetch"] = "resource_fetch"
    name: str
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {
            "type": "object",
            "description": "Get resource parameters",
            "properties": {
                "uri": {"type": "string", "description": "URI of the resource to get"},
            },
            "required": ["uri"],
        }
    )


class SchemaFetch(BaseModel):
    """An argument-less capability bound to one fixed resource."""

    kind: Literal["schema_fetch"] = "schema_fetch"
    name: str
    description: Optional[str] = None
    uri: str
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


ToolDeclaration = Annotated[
    Union[GenericTool, ResourceFetch, SchemaFetch], Field(discriminator="kind")
]


# ---------------------------------------------------------------------------
# Protocol client payloads
# ---------------------------------------------------------------------------
class ExternalTool(BaseModel):
    """A tool as listed by the protocol client."""

    name: str
    description: Optional[str] = None
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class ContentItem(BaseModel):
    type: str = "text"
    text: Optional[str] = None


class ToolCallResult(BaseModel):
    """Result of invoking an external tool."""

    content: List[ContentItem] = Field(default_factory=list)
    structured_content: Optional[Dict[str, Any]] = None


class ResourceContent(BaseModel):
    uri: Optional[str] = None
    text: Optional[str] = None


class ResourceReadResult(BaseModel):
    """Contents of a resource read."""

    contents: List[ResourceContent] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Intent agent responses
# ---------------------------------------------------------------------------
class ClarifyingQuestion(BaseModel):
    """The classifier needs more information from the user."""

    type: Literal["clarifying_question"]
    content: str


class AmbiguousClassification(BaseModel):
    """The classifier gave up on finding a single intent."""

    type: Literal["intent_classification"]
    recognized_intent: Literal["ambiguous"]


class IntentClassification(BaseModel):
    """A concrete intent plus a first-person restatement of the request."""

    type: Literal["intent_classification"]
    recognized_intent: str
    user_query: str

    @field_validator("recognized_intent")
    @classmethod
    def _not_ambiguous(cls, value: str) -> str:
        if value == AMBIGUOUS_INTENT:
            raise ValueError('recognized_intent cannot be "ambiguous" when user_query is present')
        return value


def _intent_response_tag(value: Any) -> str | None:
    """Pick the variant from ``type`` and, for classifications, ``recognized_intent``."""
    if isinstance(value, dict):
        kind = value.get("type")
        intent = value.get("recognized_intent")
    else:
        kind = getattr(value, "type", None)
        intent = getattr(value, "recognized_intent", None)

    if kind == "clarifying_question":
        return "clarifying_question"
    if kind == "intent_classification":
        return "ambiguous" if intent == AMBIGUOUS_INTENT else "intent_classification"
    return None


IntentAgentResponse = Annotated[
    Union[
        Annotated[ClarifyingQuestion, Tag("clarifying_question")],
        Annotated[AmbiguousClassification, Tag("ambiguous")],
        Annotated[IntentClassification, Tag("intent_classification")],
    ],
    Discriminator(_intent_response_tag),
]


# ---------------------------------------------------------------------------
# Task agent responses
# ---------------------------------------------------------------------------
class TaskResponse(BaseModel):
    """A user-facing answer."""

    type: Literal["response"]
    content: str


class IntentShiftDetected(BaseModel):
    """The request needs a different intent than the active one."""

    type: Literal["intent_shift_detected"]
    reason: str


class TaskError(BaseModel):
    """The task could not be completed."""

    type: Literal["error"] = "error"
    message: str


TaskAgentResponse = Annotated[
    Union[TaskResponse, IntentShiftDetected, TaskError], Field(discriminator="type")
]

_INTENT_RESPONSE_ADAPTER: TypeAdapter = TypeAdapter(IntentAgentResponse)
_TASK_RESPONSE_ADAPTER: TypeAdapter = TypeAdapter(TaskAgentResponse)


def _validate(adapter: TypeAdapter, text: str, label: str) -> Any:
    try:
        return adapter.validate_json(text)
    except ValidationError as exc:
        raise ResponseValidationError(f"Unexpected {label} response: {exc}", text) from exc


def parse_intent_response(text: str) -> Union[
    ClarifyingQuestion, AmbiguousClassification, IntentClassification
]:
    """Parse raw model text into an intent agent response or raise ``ResponseValidationError``."""
    return _validate(_INTENT_RESPONSE_ADAPTER, text, "intent agent")


def parse_task_response(text: str) -> Union[TaskResponse, IntentShiftDetected, TaskError]:
    """Parse raw model text into a task agent response or raise ``ResponseValidationError``."""
    return _validate(_TASK_RESPONSE_ADAPTER, text, "task agent")
