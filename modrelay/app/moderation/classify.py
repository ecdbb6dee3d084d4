import json
import logging
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from ..models.events import ChatMessage, EventKind, ModerationEvent, WebhookPayload
from .errors import MalformedPayload, MissingRequiredField, ModerationError
from .flag_memory import FlagMemory
from .redact import contains_profanity

logger = logging.getLogger(__name__)

FLAGGED_EVENT = "message.flagged"
NEW_MESSAGE_EVENT = "message.new"
QUEUE_ACTIONS = {"flag", "remove"}

RawEvent = Union[bytes, bytearray, str, Mapping[str, Any]]


def parse_payload(raw: RawEvent) -> WebhookPayload:
    """Decode a webhook body into a ``WebhookPayload``.

    Raises MalformedPayload for anything that is not a JSON object of the
    expected shape.
    """
    data: Any = raw
    try:
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("utf-8")
        if isinstance(data, str):
            data = json.loads(data)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedPayload(f"undecodable body: {e}") from e
    if not isinstance(data, Mapping):
        raise MalformedPayload(f"expected a JSON object, got {type(data).__name__}")
    try:
        return WebhookPayload.model_validate(dict(data))
    except ValidationError as e:
        raise MalformedPayload(f"invalid payload: {e.error_count()} error(s)") from e


def _require(value: Optional[str], field: str) -> str:
    if not value:
        raise MissingRequiredField(field)
    return value


def _classify_payload(
    payload: WebhookPayload,
    memory: FlagMemory,
    system_user_id: str,
) -> ModerationEvent:
    msg = payload.message
    message = ChatMessage.from_webhook(msg) if msg is not None else None

    # Never react to our own notices
    if message is not None and message.user_id == system_user_id:
        return ModerationEvent.ignorable("system author", message.id)

    # A rule whose fields are missing does not match; later rules still get a look
    if payload.type == FLAGGED_EVENT and message is not None and message.id:
        return ModerationEvent(kind=EventKind.EXPLICIT_FLAG, message_id=message.id, message=message)

    if payload.type == NEW_MESSAGE_EVENT and message is not None and message.id and isinstance(message.text, str):
        mid = message.id
        if not contains_profanity(message.text):
            return ModerationEvent.ignorable("no heuristic match", mid)
        if memory.was_recently_flagged(mid):
            return ModerationEvent.ignorable("recently flagged", mid)
        return ModerationEvent(kind=EventKind.HEURISTIC_CANDIDATE, message_id=mid, message=message)

    item = payload.item
    if item is not None and item.recommended_action in QUEUE_ACTIONS:
        mid = _require(item.message_id, "item.message_id")
        return ModerationEvent(
            kind=EventKind.AI_QUEUE_RECOMMENDATION,
            message_id=mid,
            recommended_action=item.recommended_action,
        )

    return ModerationEvent.ignorable(f"unhandled event type {payload.type!r}")


def classify(
    raw: RawEvent,
    memory: FlagMemory,
    system_user_id: str = "system-bot",
) -> ModerationEvent:
    """Classify a raw webhook body.

    Decision order, first match wins:
    - message authored by ``system_user_id`` -> IGNORABLE
    - ``message.flagged`` with a message id -> EXPLICIT_FLAG
    - ``message.new`` with id and text whose text trips the profanity heuristic and whose id
      is not in ``memory`` -> HEURISTIC_CANDIDATE
    - queue ``item`` recommending flag/remove -> AI_QUEUE_RECOMMENDATION
    - anything else -> IGNORABLE

    Never raises: malformed bodies and missing fields come back IGNORABLE.
    """
    try:
        payload = parse_payload(raw)
        return _classify_payload(payload, memory, system_user_id)
    except ModerationError as e:
        logger.warning("[webhook] ignoring event: %s", e)
        return ModerationEvent.ignorable(str(e))


def describe(event: ModerationEvent) -> Dict[str, Any]:
    return {
        "kind": event.kind.value,
        "message_id": event.message_id,
        "reason": event.reason,
        "recommended_action": event.recommended_action,
    }
