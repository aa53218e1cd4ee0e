"""
MCP implementation of :class:`BaseProtocolClient`.

Connects to an MCP server over the streamable HTTP transport and converts the SDK's result types
into the provider-neutral models from :mod:`concierge.core.schema`.
"""

import logging
from contextlib import AsyncExitStack
from types import TracebackType
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Type,
)

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation
from pydantic import AnyUrl

from concierge.core.schema import (
    ContentItem,
    ExternalTool,
    ResourceContent,
    ResourceReadResult,
    ToolCallResult,
)
from concierge.protocol.client_interface import BaseProtocolClient

logger = logging.getLogger(__name__)


class MCPConnectionError(RuntimeError):
    """Raised when the client is used before :meth:`MCPProtocolClient.connect`."""


class MCPProtocolClient(BaseProtocolClient):
    """Thin wrapper around ``mcp.ClientSession``; use as an async context manager."""

    def __init__(
        self, server_url: str, client_name: str = "concierge", client_version: str = "0.1.0"
    ) -> None:
        self._server_url = server_url
        self._client_info = Implementation(name=client_name, version=client_version)
        self._stack: Optional[AsyncExitStack] = None
        self._session: Optional[ClientSession] = None

    async def __aenter__(self) -> "MCPProtocolClient":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()

    async def connect(self) -> None:
        """Open the transport and run the MCP initialize handshake."""
        stack = AsyncExitStack()
        try:
            read_stream, write_stream, _ = await stack.enter_async_context(
                streamablehttp_client(self._server_url)
            )
            session = await stack.enter_async_context(
                ClientSession(read_stream, write_stream, client_info=self._client_info)
            )
            await session.initialize()
        except BaseException:
            await stack.aclose()
            raise

        self._stack = stack
        self._session = session
        logger.info("Connected to MCP server at %s", self._server_url)

    async def aclose(self) -> None:
        """Close the session and the transport."""
        if self._stack is not None:
            await self._stack.aclose()
        self._stack = None
        self._session = None

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise MCPConnectionError(f"Not connected to MCP server at {self._server_url}")
        return self._session

    # ------------------------------------------------------------------ #
    # BaseProtocolClient
    # ------------------------------------------------------------------ #
    async def list_tools(self) -> List[ExternalTool]:
        result = await self._require_session().list_tools()
        return [
            ExternalTool(
                name=tool.name, description=tool.description, input_schema=tool.inputSchema
            )
            for tool in result.tools
        ]

    async def call_tool(self, name: str, args: Dict[str, Any]) -> ToolCallResult:
        result = await self._require_session().call_tool(name, arguments=args)
        if result.isError:
            logger.warning("MCP tool '%s' reported an error result", name)
        return ToolCallResult(
            content=[
                ContentItem(type=item.type, text=getattr(item, "text", None))
                for item in result.content
            ],
            structured_content=result.structuredContent,
        )

    async def read_resource(self, uri: str) -> ResourceReadResult:
        result = await self._require_session().read_resource(AnyUrl(uri))
        return ResourceReadResult(
            contents=[
                ResourceContent(uri=str(item.uri), text=getattr(item, "text", None))
                for item in result.contents
            ]
        )
