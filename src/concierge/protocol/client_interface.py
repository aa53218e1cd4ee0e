"""
Protocol client interface for Concierge.

The agents never talk to an MCP session directly; they depend on :class:`BaseProtocolClient`, which
exposes the three operations they need.  :mod:`concierge.protocol.mcp_client` provides the real
implementation and the tests provide scripted fakes.
"""

from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Dict,
    List,
)

from concierge.core.schema import (
    ExternalTool,
    ResourceReadResult,
    ToolCallResult,
)


class BaseProtocolClient(ABC):
    """Abstract tool/resource client."""

    @abstractmethod
    async def list_tools(self) -> List[ExternalTool]:
        """Return every tool the server exposes."""

    @abstractmethod
    async def call_tool(self, name: str, args: Dict[str, Any]) -> ToolCallResult:
        """Invoke tool *name* with *args*."""

    @abstractmethod
    async def read_resource(self, uri: str) -> ResourceReadResult:
        """Read the resource addressed by *uri*."""
