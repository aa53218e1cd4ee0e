"""
Tool registry for Concierge.

Every capability the task agent can declare to the completion provider is registered here once,
tagged with its kind (generic MCP tool, resource fetch, or schema fetch).  At call time the agent
looks the name up instead of guessing the kind from naming conventions.
"""

import logging
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
)

from concierge.core.schema import (
    ExternalTool,
    GenericTool,
    ResourceFetch,
    SchemaFetch,
    ToolDeclaration,
)

logger = logging.getLogger(__name__)

# Keys some providers reject in function parameter schemas
_UNSUPPORTED_SCHEMA_KEYS = frozenset({"$schema", "additionalProperties"})


def clean_parameter_schema(schema: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop top-level schema keys that completion providers do not accept."""
    return {key: value for key, value in schema.items() if key not in _UNSUPPORTED_SCHEMA_KEYS}


def generic_tool_from_external(tool: ExternalTool) -> GenericTool:
    """Convert a tool listed by the MCP server into a declaration."""
    return GenericTool(
        name=tool.name,
        description=tool.description,
        parameters=clean_parameter_schema(tool.input_schema),
    )


def knowledge_document_tool(name: str) -> ResourceFetch:
    """Build the capability that fetches a knowledge base document by URI."""
    return ResourceFetch(
        name=name,
        description=(
            "Fetch the full text of a knowledge base document. Use the URI returned by the "
            "search tool."
        ),
    )


def record_schema_tool(name: str, uri: str) -> SchemaFetch:
    """Build the capability that returns the schema for creating a structured record."""
    return SchemaFetch(
        name=name,
        description="Get the JSON schema a structured record must follow before creating one.",
        uri=uri,
    )


class ToolRegistry:
    """Name-keyed registry of tool declarations, in registration order."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolDeclaration] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, declaration: ToolDeclaration) -> None:
        """
        Register *declaration* under its name.

        Raises
        ------
        ValueError
            If a tool with the same name is already registered.
        """
        if declaration.name in self._tools:
            raise ValueError(f"Tool '{declaration.name}' is already registered.")
        logger.debug("Registering %s tool '%s'", declaration.kind, declaration.name)
        self._tools[declaration.name] = declaration

    def get(self, name: str) -> Optional[ToolDeclaration]:
        return self._tools.get(name)

    def declarations(self, allowed: Optional[Iterable[str]] = None) -> List[ToolDeclaration]:
        """
        Return declarations to send to the provider.

        With *allowed* set, generic tools are limited to those names; the built-in fetch
        capabilities are always included.
        """
        if allowed is None:
            return list(self._tools.values())
        permitted = set(allowed)
        return [
            tool
            for tool in self._tools.values()
            if not isinstance(tool, GenericTool) or tool.name in permitted
        ]
