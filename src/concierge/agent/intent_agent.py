"""Intent recognition agent: the first stage of every conversation."""

import logging
from typing import (
    List,
    Union,
)

from concierge.agent.history import ConversationHistory
from concierge.agent.prompts import intent_agent_prompt
from concierge.agent.provider_interface import BaseCompletionProvider
from concierge.core.resources import load_intents
from concierge.core.schema import (
    AmbiguousClassification,
    ClarifyingQuestion,
    Intent,
    IntentClassification,
    ResponseValidationError,
    parse_intent_response,
)
from concierge.protocol.client_interface import BaseProtocolClient

logger = logging.getLogger(__name__)

IntentAgentResult = Union[ClarifyingQuestion, AmbiguousClassification, IntentClassification]


class IntentAgent:
    """
    Classify a query into one of the registered intents, asking clarifying questions if needed.

    The history is a scratch context for one classification round.  It survives clarifying
    questions and is cleared as soon as a terminal classification comes back.
    """

    def __init__(
        self,
        client: BaseProtocolClient,
        provider: BaseCompletionProvider,
        intents_uri: str,
    ) -> None:
        self._client = client
        self._provider = provider
        self._intents_uri = intents_uri
        self._intents: List[Intent] = []
        self._system_prompt: str | None = None
        self._history = ConversationHistory()

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def intents(self) -> List[Intent]:
        return list(self._intents)

    async def setup(self) -> None:
        """Fetch the intents and build the system prompt; raises ``ConfigError`` on bad config."""
        self._intents = await load_intents(self._client, self._intents_uri)
        logger.info("[Intent Agent] %d intents registered.", len(self._intents))

        self._system_prompt = intent_agent_prompt(self._intents)
        logger.info("[Intent Agent] Setup complete.")

    async def process(self, query: str) -> IntentAgentResult:
        """
        Classify *query*.

        Raises
        ------
        ResponseValidationError
            If the model's reply is not one of the three expected shapes.  There is no retry.
        """
        self._history.add_user_text(query)

        completion = await self._provider.submit(
            self._history.turns,
            [],
            self._system_prompt,
            response_format="json",
        )
        text = completion.text or ""
        self._history.add_model_text(text)
        logger.debug("[Intent Agent] Response: %s", text)

        try:
            result = parse_intent_response(text)
        except ResponseValidationError:
            logger.error("[Intent Agent] Unexpected response: %s", text)
            raise

        if isinstance(result, (AmbiguousClassification, IntentClassification)):
            logger.info("[Intent Agent] Classified as '%s'", result.recognized_intent)
            self._history.clear()
        return result
