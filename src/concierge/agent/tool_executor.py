"""Resolves function calls from the completion provider against the tool registry."""

import json
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Optional,
    Set,
)

from concierge.agent.observer import (
    AgentObserver,
    NullObserver,
)
from concierge.core.schema import (
    FunctionCall,
    ResourceFetch,
    SchemaFetch,
)
from concierge.protocol.client_interface import BaseProtocolClient
from concierge.tools import ToolRegistry

logger = logging.getLogger(__name__)

GET_PROMPT_TOOL = "get_prompt"
GET_PROMPT_RESULT = "Get prompt request"
NO_CONTENT_RESULT = "No content"


class ToolProtocolError(RuntimeError):
    """Raised when the provider emits a function call without a name or arguments."""


class ToolExecutor:
    """
    Turn one :class:`FunctionCall` into the result string handed back to the model.

    Calls are dispatched on the kind recorded in the registry.  Names the registry does not know
    are treated as generic MCP tools.
    """

    def __init__(
        self,
        client: BaseProtocolClient,
        registry: ToolRegistry,
        observer: Optional[AgentObserver] = None,
    ) -> None:
        self._client = client
        self._registry = registry
        self.observer: AgentObserver = observer or NullObserver()

    async def execute(self, call: FunctionCall, permitted: Optional[Set[str]] = None) -> str:
        """
        Resolve *call* and return its result as text.

        Parameters
        ----------
        call:
            The function call returned by the provider.
        permitted:
            Generic tool names the active intent may use.  ``None`` disables the check.

        Raises
        ------
        ToolProtocolError
            If the call has no name or no arguments.
        """
        if not call.name:
            raise ToolProtocolError("No name for function call")
        if call.arguments is None:
            raise ToolProtocolError(f"No args for function call '{call.name}'")

        declaration = self._registry.get(call.name)

        if isinstance(declaration, ResourceFetch):
            return await self._fetch_document(call.arguments)
        if call.name == GET_PROMPT_TOOL:
            logger.info("Prompt requested with args %s; prompts are not supported", call.arguments)
            return GET_PROMPT_RESULT
        if isinstance(declaration, SchemaFetch):
            return await self._fetch_schema(declaration)
        if permitted is not None and call.name not in permitted:
            logger.warning("Refusing tool '%s': not allowed for the active intent", call.name)
            return f"Tool '{call.name}' is not allowed for the current intent and was not called."
        return await self._call_tool(call.name, call.arguments)

    # ------------------------------------------------------------------ #
    # Dispatch targets
    # ------------------------------------------------------------------ #
    async def _fetch_document(self, args: Dict[str, Any]) -> str:
        uri = args.get("uri")
        if not isinstance(uri, str) or not uri:
            raise ToolProtocolError("Document fetch requires a 'uri' argument")

        self._emit(self.observer.on_fetching_document, uri)
        result = await self._client.read_resource(uri)
        return "\n\n".join(
            f"{content.uri or uri}\n{content.text}" if content.text is not None else ""
            for content in result.contents
        )

    async def _fetch_schema(self, declaration: SchemaFetch) -> str:
        logger.debug("Reading schema resource %s", declaration.uri)
        result = await self._client.read_resource(declaration.uri)
        if result.contents and result.contents[0].text is not None:
            return result.contents[0].text
        return NO_CONTENT_RESULT

    async def _call_tool(self, name: str, args: Dict[str, Any]) -> str:
        self._emit(self.observer.on_calling_tool, name, json.dumps(args))
        result = await self._client.call_tool(name, args)
        for item in result.content:
            if item.text:
                return item.text
        return json.dumps(result.structured_content)

    @staticmethod
    def _emit(callback: Callable[..., None], *args: str) -> None:
        try:
            callback(*args)
        except Exception:  # pylint: disable=broad-except
            logger.warning("Observer callback %s failed", callback.__name__, exc_info=True)
