from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from .base import BaseWebhookModel


class EventKind(str, Enum):
    """Categories a webhook event can be classified into."""

    EXPLICIT_FLAG = "explicit_flag"
    HEURISTIC_CANDIDATE = "heuristic_candidate"
    AI_QUEUE_RECOMMENDATION = "ai_queue_recommendation"
    IGNORABLE = "ignorable"


class WebhookUser(BaseWebhookModel):
    id: Optional[str] = None


class WebhookMessage(BaseWebhookModel):
    id: Optional[str] = None
    cid: Optional[str] = None
    user: Optional[WebhookUser] = None
    text: Optional[str] = None


class QueueItem(BaseWebhookModel):
    message_id: Optional[str] = None
    recommended_action: Optional[str] = None


class WebhookPayload(BaseWebhookModel):
    """Subset of a Stream webhook body the relay looks at."""

    type: Optional[str] = None
    message: Optional[WebhookMessage] = None
    item: Optional[QueueItem] = None


@dataclass
class ChatMessage:
    id: Optional[str]
    cid: Optional[str]
    user_id: Optional[str] = None
    text: Optional[str] = None

    @classmethod
    def from_webhook(cls, msg: WebhookMessage) -> "ChatMessage":
        return cls(
            id=msg.id,
            cid=msg.cid,
            user_id=msg.user.id if msg.user else None,
            text=msg.text,
        )

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "ChatMessage":
        """Build from a message object as returned by the chat API."""
        user = data.get("user") or {}
        text = data.get("text")
        return cls(
            id=data.get("id"),
            cid=data.get("cid"),
            user_id=user.get("id") if isinstance(user, Mapping) else None,
            text=text if isinstance(text, str) else None,
        )


@dataclass
class ModerationEvent:
    kind: EventKind
    message_id: Optional[str] = None
    message: Optional[ChatMessage] = None
    recommended_action: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_ignorable(self) -> bool:
        return self.kind is EventKind.IGNORABLE

    @classmethod
    def ignorable(cls, reason: str, message_id: Optional[str] = None) -> "ModerationEvent":
        return cls(kind=EventKind.IGNORABLE, message_id=message_id, reason=reason)
