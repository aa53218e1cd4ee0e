"""
Orchestrator: routes each query to the intent agent or the task agent.

The only session state is the active intent.  Without one, queries go through classification;
with one, they go straight to the task agent.  The orchestrator is also the task agent's observer
and re-emits its events, so a presentation layer subscribes in one place.
"""

import logging
from typing import (
    List,
)

from concierge.agent.intent_agent import IntentAgent
from concierge.agent.observer import AgentObserver
from concierge.agent.task_agent import TaskAgent
from concierge.core.schema import (
    AmbiguousClassification,
    ClarifyingQuestion,
    IntentClassification,
    IntentShiftDetected,
    TaskError,
    TaskResponse,
)

logger = logging.getLogger(__name__)

AMBIGUOUS_INTENT_REPLY = (
    "I couldn't work out what you need help with. Could you describe your request differently?"
)
INTENT_SHIFT_UNRESOLVED_REPLY = (
    "I couldn't find a way to handle that request. Could you rephrase it?"
)


class Orchestrator:
    """Two-stage router in front of an :class:`IntentAgent` and a :class:`TaskAgent`."""

    def __init__(self, intent_agent: IntentAgent, task_agent: TaskAgent) -> None:
        self._intent_agent = intent_agent
        self._task_agent = task_agent
        self._active_intent: str | None = None
        self._subscribers: List[AgentObserver] = []
        task_agent.observer = self

    @property
    def active_intent(self) -> str | None:
        return self._active_intent

    def subscribe(self, observer: AgentObserver) -> None:
        self._subscribers.append(observer)

    def unsubscribe(self, observer: AgentObserver) -> None:
        if observer in self._subscribers:
            self._subscribers.remove(observer)

    # ------------------------------------------------------------------ #
    # AgentObserver: fan the task agent's events out to subscribers
    # ------------------------------------------------------------------ #
    def on_fetching_document(self, uri: str) -> None:
        for observer in list(self._subscribers):
            try:
                observer.on_fetching_document(uri)
            except Exception:  # pylint: disable=broad-except
                logger.warning("Subscriber %r failed on fetching document", observer, exc_info=True)

    def on_calling_tool(self, name: str, args_json: str) -> None:
        for observer in list(self._subscribers):
            try:
                observer.on_calling_tool(name, args_json)
            except Exception:  # pylint: disable=broad-except
                logger.warning("Subscriber %r failed on calling tool", observer, exc_info=True)

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #
    async def handle_query(self, query: str) -> str:
        """Route *query* and return the text to show the user."""
        if self._active_intent is None:
            return await self._route_intent(query, reclassified=False)
        return await self._route_task(query, original_query=query, reclassified=False)

    async def _route_intent(self, query: str, reclassified: bool) -> str:
        response = await self._intent_agent.process(query)

        if isinstance(response, ClarifyingQuestion):
            return response.content

        if isinstance(response, AmbiguousClassification):
            # No recovery path exists for an ambiguous classification yet.
            logger.warning("Intent could not be determined for query: %s", query)
            return AMBIGUOUS_INTENT_REPLY

        if isinstance(response, IntentClassification):
            self._task_agent.set_system_prompt(response.recognized_intent)
            self._active_intent = self._task_agent.intent
            logger.info("Active intent set to '%s'", self._active_intent)
            return await self._route_task(
                response.user_query, original_query=query, reclassified=reclassified
            )

        raise TypeError(f"Unexpected intent agent response: {response!r}")

    async def _route_task(self, query: str, original_query: str, reclassified: bool) -> str:
        response = await self._task_agent.process(query)

        if isinstance(response, TaskResponse):
            return response.content

        if isinstance(response, TaskError):
            return response.message

        if isinstance(response, IntentShiftDetected):
            logger.info("Intent shift away from '%s': %s", self._active_intent, response.reason)
            self._active_intent = None
            if reclassified:
                logger.warning("Second intent shift for query: %s", original_query)
                return INTENT_SHIFT_UNRESOLVED_REPLY
            return await self._route_intent(original_query, reclassified=True)

        raise TypeError(f"Unexpected task agent response: {response!r}")
