"""Composition root: wire a protocol client and a provider into a ready orchestrator."""

import logging
from typing import Optional

from concierge.agent.intent_agent import IntentAgent
from concierge.agent.observer import AgentObserver
from concierge.agent.orchestrator import Orchestrator
from concierge.agent.provider_interface import BaseCompletionProvider
from concierge.agent.task_agent import TaskAgent
from concierge.config import (
    Settings,
    settings as default_settings,
)
from concierge.protocol.client_interface import BaseProtocolClient

logger = logging.getLogger(__name__)


async def build_orchestrator(
    client: BaseProtocolClient,
    provider: BaseCompletionProvider,
    observer: Optional[AgentObserver] = None,
    config: Optional[Settings] = None,
) -> Orchestrator:
    """
    Create both agents, run their setup and return an orchestrator over them.

    Raises
    ------
    ConfigError
        If the persona or intents resource is malformed.
    """
    config = config or default_settings

    intent_agent = IntentAgent(client, provider, intents_uri=config.INTENTS_URI)
    await intent_agent.setup()

    task_agent = TaskAgent(
        client,
        provider,
        persona_uri=config.PERSONA_URI,
        intents_uri=config.INTENTS_URI,
        record_schema_uri=config.RECORD_SCHEMA_URI,
        knowledge_document_tool_name=config.KNOWLEDGE_DOCUMENT_TOOL,
        record_schema_tool_name=config.RECORD_SCHEMA_TOOL,
        max_attempts=config.MAX_RESPONSE_ATTEMPTS,
        tool_gating=config.TOOL_GATING,
    )
    await task_agent.setup()

    orchestrator = Orchestrator(intent_agent, task_agent)
    if observer is not None:
        orchestrator.subscribe(observer)
    logger.info("Orchestrator ready")
    return orchestrator
