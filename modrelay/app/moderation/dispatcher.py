import logging
from typing import Optional, Set

from fastapi import Request

from ..models.events import ChatMessage, EventKind, ModerationEvent
from ..services.stream import ChatBackend, split_cid
from .errors import CollaboratorCallFailure
from .flag_memory import FlagMemory
from .redact import redact

logger = logging.getLogger(__name__)

NOTICE_TEMPLATE = "⚠️ A message from @{author} was flagged by moderation.\n“{preview}”"
UNKNOWN_AUTHOR = "someone"


def compose_notice(message: ChatMessage, preview_chars: int = 120) -> str:
    preview = redact((message.text or "")[:preview_chars])
    return NOTICE_TEMPLATE.format(author=message.user_id or UNKNOWN_AUTHOR, preview=preview)


class NoticeDispatcher:
    """Posts one redacted moderation notice per flagged message.

    ``memory`` is claimed before any call to ``backend`` so that two events
    for the same message racing through the event loop produce one notice.
    Delivery is attempted once; failures are logged and the claim is kept.
    """

    def __init__(
        self,
        backend: ChatBackend,
        memory: FlagMemory,
        system_user_id: str = "system-bot",
        preview_chars: int = 120,
    ):
        self.backend = backend
        self.memory = memory
        self.system_user_id = system_user_id
        self.preview_chars = preview_chars
        self._flagging: Set[str] = set()

    async def dispatch(self, message: ChatMessage) -> bool:
        """Deliver the notice for ``message``. Returns True if it was sent."""
        if not message.id or not message.cid:
            return False
        target = split_cid(message.cid)
        if target is None:
            logger.warning("cannot deliver notice for %s: bad cid %r", message.id, message.cid)
            return False
        channel_type, channel_id = target

        if not self.memory.claim(message.id):
            logger.debug("notice for %s already sent within the window", message.id)
            return False

        text = compose_notice(message, self.preview_chars)
        try:
            await self.backend.send_message(
                channel_type,
                channel_id,
                {"text": text, "type": "system"},
                self.system_user_id,
            )
        except CollaboratorCallFailure as e:
            logger.warning(
                "notice delivery failed for %s in %s (retryable=%s): %s",
                message.id, message.cid, e.retryable, e,
            )
            return False
        logger.info("notice posted for %s in %s", message.id, message.cid)
        return True

    async def _register_flag(self, message_id: str) -> None:
        # Provider retries of the same message.new register the flag once
        if message_id in self._flagging or self.memory.was_recently_flagged(message_id):
            return
        self._flagging.add(message_id)
        try:
            await self.backend.flag_message(message_id, user_id=self.system_user_id)
        except CollaboratorCallFailure as e:
            # Best-effort; the notice still goes out
            logger.warning("[webhook] fallback flag failed for %s: %s", message_id, e)
        finally:
            self._flagging.discard(message_id)

    async def _resolve(self, message_id: str) -> Optional[ChatMessage]:
        try:
            resp = await self.backend.get_message(message_id)
        except CollaboratorCallFailure as e:
            logger.warning("could not resolve queued message %s: %s", message_id, e)
            return None
        data = (resp or {}).get("message")
        if not data:
            logger.info("queued message %s not found", message_id)
            return None
        message = ChatMessage.from_api(data)
        if message.user_id == self.system_user_id:
            return None
        if not message.id:
            message.id = message_id
        return message

    async def handle(self, event: ModerationEvent) -> bool:
        """Act on a classified event. Returns True if a notice was sent."""
        if event.kind is EventKind.EXPLICIT_FLAG and event.message is not None:
            return await self.dispatch(event.message)

        if event.kind is EventKind.HEURISTIC_CANDIDATE and event.message is not None:
            await self._register_flag(event.message_id)
            return await self.dispatch(event.message)

        if event.kind is EventKind.AI_QUEUE_RECOMMENDATION and event.message_id:
            message = await self._resolve(event.message_id)
            if message is None:
                return False
            return await self.dispatch(message)

        return False


def get_dispatcher(request: Request) -> NoticeDispatcher:
    """Dependency for getting the app-wide dispatcher."""
    return request.app.state.dispatcher
