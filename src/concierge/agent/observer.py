"""Typed observer interface for the task agent's activity events."""

from typing import Protocol


class AgentObserver(Protocol):
    """Receives fire-and-forget notifications while the task agent resolves calls."""

    def on_fetching_document(self, uri: str) -> None:
        """A knowledge document is about to be read."""

    def on_calling_tool(self, name: str, args_json: str) -> None:
        """An external tool is about to be invoked with JSON-encoded arguments."""


class NullObserver:
    """Observer that ignores every event."""

    def on_fetching_document(self, uri: str) -> None:
        pass

    def on_calling_tool(self, name: str, args_json: str) -> None:
        pass
