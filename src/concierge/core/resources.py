"""Load the persona and intent configuration resources from the MCP server."""

import json
import logging
from typing import (
    Any,
    List,
)

from pydantic import ValidationError

from concierge.core.schema import (
    Intent,
    IntentCollection,
    Persona,
)
from concierge.protocol.client_interface import BaseProtocolClient

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when a configuration resource is missing or has an unexpected structure."""


async def _read_json(client: BaseProtocolClient, uri: str) -> Any:
    result = await client.read_resource(uri)
    if not result.contents or result.contents[0].text is None:
        raise ConfigError(f"Resource '{uri}' returned no text content")
    try:
        return json.loads(result.contents[0].text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Resource '{uri}' is not valid JSON: {exc}") from exc


async def load_persona(client: BaseProtocolClient, uri: str) -> Persona:
    """Fetch and validate the persona resource."""
    raw = await _read_json(client, uri)
    try:
        return Persona.model_validate(raw)
    except ValidationError as exc:
        logger.error("Unexpected persona structure: %s", exc)
        raise ConfigError("Unexpected persona structure") from exc


async def load_intents(client: BaseProtocolClient, uri: str) -> List[Intent]:
    """Fetch and validate the intent collection."""
    raw = await _read_json(client, uri)
    try:
        return IntentCollection.validate_python(raw)
    except ValidationError as exc:
        logger.error("Unexpected intents structure: %s", exc)
        raise ConfigError("Unexpected intents structure") from exc
