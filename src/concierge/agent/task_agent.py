"""
Task agent: answers a query within the scope of one intent.

The agent runs a tool-calling loop against the completion provider.  Each round either resolves the
function calls the model asked for, or treats the reply as the terminal result and validates it.
Only validation failures count against the attempt budget; tool rounds are free.
"""

import logging
import uuid
from typing import (
    List,
    Optional,
    Set,
    Union,
    get_args,
)

from concierge.agent.history import ConversationHistory
from concierge.agent.observer import AgentObserver
from concierge.agent.prompts import (
    CORRECTIVE_INSTRUCTION,
    intent_transition_marker,
    task_agent_prompt,
)
from concierge.agent.provider_interface import BaseCompletionProvider
from concierge.agent.tool_executor import (
    ToolExecutor,
    ToolProtocolError,
)
from concierge.config import ToolGating
from concierge.core.resources import (
    load_intents,
    load_persona,
)
from concierge.core.schema import (
    Completion,
    FunctionCall,
    Intent,
    IntentShiftDetected,
    Persona,
    ResponseValidationError,
    TaskError,
    TaskResponse,
    ToolDeclaration,
    parse_task_response,
)
from concierge.protocol.client_interface import BaseProtocolClient
from concierge.tools import (
    ToolRegistry,
    generic_tool_from_external,
    knowledge_document_tool,
    record_schema_tool,
)

logger = logging.getLogger(__name__)

TaskAgentResult = Union[TaskResponse, IntentShiftDetected, TaskError]

RETRY_EXHAUSTED_MESSAGE = "Sorry, I could not produce a valid response. Please try again."
PROTOCOL_ERROR_MESSAGE = "Sorry, something went wrong while using a tool. Please try again."
GENERIC_ERROR_MESSAGE = "Sorry, something went wrong while processing your request."

TOOL_GATING_MODES = get_args(ToolGating)


class ScopeError(RuntimeError):
    """Raised when the task agent is asked to work under an unknown intent, or under none."""


class TaskAgent:
    """Executes queries for the active intent using the MCP server's tools and resources."""

    def __init__(
        self,
        client: BaseProtocolClient,
        provider: BaseCompletionProvider,
        *,
        persona_uri: str,
        intents_uri: str,
        record_schema_uri: str,
        knowledge_document_tool_name: str = "get_knowledge_base_document",
        record_schema_tool_name: str = "get_record_schema",
        max_attempts: int = 3,
        tool_gating: ToolGating = "strict",
        observer: Optional[AgentObserver] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if tool_gating not in TOOL_GATING_MODES:
            raise ValueError(f"Unknown tool gating mode '{tool_gating}'")

        self._client = client
        self._provider = provider
        self._persona_uri = persona_uri
        self._intents_uri = intents_uri
        self._record_schema_uri = record_schema_uri
        self._knowledge_document_tool_name = knowledge_document_tool_name
        self._record_schema_tool_name = record_schema_tool_name
        self._max_attempts = max_attempts
        self._tool_gating = tool_gating

        self._persona: Optional[Persona] = None
        self._intents: List[Intent] = []
        self._intent: Optional[Intent] = None
        self._system_prompt: str | None = None
        self._history = ConversationHistory()
        self._registry = ToolRegistry()
        self._executor = ToolExecutor(client, self._registry, observer)

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #
    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def intent(self) -> str | None:
        """Name of the intent the agent is currently scoped to."""
        return self._intent.name if self._intent else None

    @property
    def system_prompt(self) -> str | None:
        return self._system_prompt

    @property
    def observer(self) -> AgentObserver:
        return self._executor.observer

    @observer.setter
    def observer(self, observer: AgentObserver) -> None:
        self._executor.observer = observer

    # ------------------------------------------------------------------ #
    # Setup and scope
    # ------------------------------------------------------------------ #
    async def setup(self) -> None:
        """Fetch persona and intents, then register the tool set; raises ``ConfigError``."""
        self._persona = await load_persona(self._client, self._persona_uri)
        self._intents = await load_intents(self._client, self._intents_uri)
        logger.info(
            "[Task Agent] Persona '%s' and %d intents registered",
            self._persona.name,
            len(self._intents),
        )

        for tool in await self._client.list_tools():
            self._registry.register(generic_tool_from_external(tool))
        self._registry.register(knowledge_document_tool(self._knowledge_document_tool_name))
        self._registry.register(
            record_schema_tool(self._record_schema_tool_name, self._record_schema_uri)
        )
        logger.info("[Task Agent] %d tools registered", len(self._registry))
        logger.info("[Task Agent] Setup complete.")

    def set_system_prompt(self, intent_name: str) -> None:
        """
        Scope the agent to *intent_name*.

        Raises
        ------
        ScopeError
            If the intent is not registered.  The current scope is left untouched.
        """
        wanted = intent_name.strip()
        intent = next((item for item in self._intents if item.name == wanted), None)
        if intent is None:
            raise ScopeError(f"Invalid intent '{intent_name}'")
        if self._persona is None:
            raise ScopeError("Task agent has not been set up")

        previous = self._intent
        if previous is not None and previous.name != intent.name:
            self._history.add_user_text(intent_transition_marker(previous.name, intent.name))
            logger.info("[Task Agent] Intent changed from '%s' to '%s'", previous.name, intent.name)

        self._intent = intent
        self._system_prompt = task_agent_prompt(self._persona.system_prompt, intent)

    # ------------------------------------------------------------------ #
    # Processing
    # ------------------------------------------------------------------ #
    async def process(self, query: str) -> TaskAgentResult:
        """Answer *query* under the active intent.  Never raises; failures become ``TaskError``."""
        try:
            return await self._run(query)
        except ToolProtocolError as exc:
            logger.error("[Task Agent] Malformed function call: %s", exc)
            return TaskError(message=PROTOCOL_ERROR_MESSAGE)
        except Exception:  # pylint: disable=broad-except
            logger.exception("[Task Agent] Error when processing query")
            return TaskError(message=GENERIC_ERROR_MESSAGE)

    async def _run(self, query: str) -> TaskAgentResult:
        if self._intent is None:
            raise ScopeError("No intent scope set")

        self._history.add_user_text(query)

        for attempt in range(1, self._max_attempts + 1):
            completion = await self._submit()
            while completion.function_calls:
                for call in completion.function_calls:
                    await self._resolve(call)
                completion = await self._submit()

            text = completion.text or ""
            try:
                result = parse_task_response(text)
            except ResponseValidationError:
                logger.warning(
                    "[Task Agent] Invalid response on attempt %d/%d: %s",
                    attempt,
                    self._max_attempts,
                    text,
                )
                # Providers reject empty text blocks, so an empty reply is not recorded
                if text:
                    self._history.add_model_text(text)
                self._history.add_user_text(CORRECTIVE_INSTRUCTION)
                continue

            self._history.add_model_text(text)
            return result

        logger.error("[Task Agent] No valid response after %d attempts", self._max_attempts)
        return TaskError(message=RETRY_EXHAUSTED_MESSAGE)

    async def _submit(self) -> Completion:
        return await self._provider.submit(
            self._history.turns,
            self._declared_tools(),
            self._system_prompt,
            max_tokens=self._persona.max_response_tokens if self._persona else None,
        )

    def _declared_tools(self) -> List[ToolDeclaration]:
        if self._tool_gating == "strict" and self._intent is not None:
            return self._registry.declarations(self._intent.allowed_tools)
        return self._registry.declarations()

    def _permitted_tools(self) -> Optional[Set[str]]:
        if self._tool_gating == "strict" and self._intent is not None:
            return set(self._intent.allowed_tools)
        return None

    async def _resolve(self, call: FunctionCall) -> None:
        """Resolve one call and record the call/response pair under a shared id."""
        result = await self._executor.execute(call, self._permitted_tools())
        call_id = call.id or f"call_{uuid.uuid4().hex}"
        # execute() has already rejected calls without a name or arguments
        self._history.add_function_call(call_id, call.name or "", call.arguments or {})
        self._history.add_function_response(call_id, call.name or "", result)
