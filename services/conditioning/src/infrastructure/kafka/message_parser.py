from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import ValidationError
from pydantic.alias_generators import to_snake
from src.core.config import settings
from src.core.logger import get_logger
from src.domain.events import DomainEvent

logger = get_logger("conditioning.message_parser")


def decode_message(raw: Optional[bytes]) -> Optional[dict]:
    """Decode a raw record value into a JSON object, or None if it is not one."""
    if not raw:
        return None
    try:
        value = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("undecodable_record", extra={"error": str(e)})
        return None
    if not isinstance(value, dict):
        logger.warning("record_not_an_object", extra={"type": type(value).__name__})
        return None
    return value


def parse_message(topic: str, payload: dict) -> Optional[DomainEvent]:
    """Translate a change event record into a DomainEvent or None.

    Records look like `{eventId?, eventName, occurredOn?, payload}`; payload
    keys may be camelCase and are normalized to entity field names.
    """
    if topic not in settings.change_event_topics:
        logger.warning("unhandled_topic", extra={"topic": topic})
        return None
    if not payload.get("eventName"):
        logger.warning("missing_event_name", extra={"topic": topic})
        return None
    body = payload.get("payload") or {}
    if not isinstance(body, dict):
        logger.warning("invalid_event_payload", extra={"topic": topic})
        return None
    try:
        return DomainEvent.model_validate(
            {**payload, "payload": _snake_keys(body)}
        )
    except ValidationError as e:
        logger.warning(
            "invalid_change_event",
            extra={"topic": topic, "event_name": payload.get("eventName"), "error": str(e)},
        )
        return None


def _snake_keys(body: dict[str, Any]) -> dict[str, Any]:
    return {to_snake(k): v for k, v in body.items()}
