import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

import aiohttp
from fastapi import Request
from stream_chat import StreamChatAsync
from stream_chat.base.exceptions import StreamAPIException

from ..config import Settings
from ..moderation.errors import CollaboratorCallFailure

logger = logging.getLogger(__name__)

# Stream error code for "channel already exists"
CHANNEL_EXISTS_CODE = 16


class ChatBackend(Protocol):
    """Operations the relay needs from the hosted chat backend."""

    def create_token(self, user_id: str) -> str: ...

    async def upsert_users(self, users: Iterable[Dict[str, Any]]) -> Dict[str, Any]: ...

    async def ensure_channel(
        self, channel_type: str, channel_id: str, created_by_id: str, members: List[str]
    ) -> str: ...

    async def add_members(self, channel_type: str, channel_id: str, members: List[str]) -> None: ...

    async def flag_message(self, message_id: str, user_id: str) -> Dict[str, Any]: ...

    async def get_message(self, message_id: str) -> Dict[str, Any]: ...

    async def update_channel_type(self, channel_type: str, **settings: Any) -> Dict[str, Any]: ...

    async def get_channel_type(self, channel_type: str) -> Dict[str, Any]: ...

    async def send_message(
        self, channel_type: str, channel_id: str, message: Dict[str, Any], user_id: str
    ) -> Dict[str, Any]: ...

    async def close(self) -> None: ...


def _failure(op: str, exc: Exception) -> CollaboratorCallFailure:
    if isinstance(exc, StreamAPIException):
        status = getattr(exc, "status_code", None)
        code = getattr(exc, "error_code", None)
        message = getattr(exc, "error_message", None) or getattr(exc, "response_text", "") or str(exc)
        retryable = status is not None and (status == 429 or status >= 500)
        return CollaboratorCallFailure(
            f"{op}: {message}",
            code=code if isinstance(code, int) else None,
            status_code=status,
            retryable=retryable,
        )
    return CollaboratorCallFailure(f"{op}: {exc}", retryable=True)


_CALL_ERRORS = (StreamAPIException, aiohttp.ClientError, asyncio.TimeoutError)


class StreamChatBackend:
    """``ChatBackend`` over the Stream Chat async SDK.

    Every SDK or transport error is re-raised as CollaboratorCallFailure so
    callers handle one exception type.
    """

    def __init__(self, api_key: str, api_secret: str, timeout: float = 6.0):
        self.api_key = api_key
        self.client = StreamChatAsync(api_key=api_key, api_secret=api_secret, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StreamChatBackend":
        return cls(settings.STREAM_KEY, settings.STREAM_SECRET, timeout=settings.STREAM_TIMEOUT_S)

    def create_token(self, user_id: str) -> str:
        return self.client.create_token(user_id)

    async def upsert_users(self, users: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            return await self.client.upsert_users(list(users))
        except _CALL_ERRORS as e:
            raise _failure("upsert_users", e) from e

    async def ensure_channel(
        self, channel_type: str, channel_id: str, created_by_id: str, members: List[str]
    ) -> str:
        channel = self.client.channel(channel_type, channel_id, {"members": members})
        try:
            await channel.create(created_by_id)
        except StreamAPIException as e:
            if getattr(e, "error_code", None) != CHANNEL_EXISTS_CODE:
                raise _failure("create_channel", e) from e
            logger.debug("channel %s:%s already exists", channel_type, channel_id)
        except _CALL_ERRORS as e:
            raise _failure("create_channel", e) from e
        return f"{channel_type}:{channel_id}"

    async def add_members(self, channel_type: str, channel_id: str, members: List[str]) -> None:
        channel = self.client.channel(channel_type, channel_id)
        try:
            await channel.add_members(members)
        except _CALL_ERRORS as e:
            raise _failure("add_members", e) from e

    async def flag_message(self, message_id: str, user_id: str) -> Dict[str, Any]:
        try:
            return await self.client.flag_message(message_id, user_id=user_id)
        except _CALL_ERRORS as e:
            raise _failure("flag_message", e) from e

    async def get_message(self, message_id: str) -> Dict[str, Any]:
        try:
            return await self.client.get_message(message_id)
        except _CALL_ERRORS as e:
            raise _failure("get_message", e) from e

    async def update_channel_type(self, channel_type: str, **settings: Any) -> Dict[str, Any]:
        try:
            return await self.client.update_channel_type(channel_type, **settings)
        except _CALL_ERRORS as e:
            raise _failure("update_channel_type", e) from e

    async def get_channel_type(self, channel_type: str) -> Dict[str, Any]:
        try:
            return await self.client.get_channel_type(channel_type)
        except _CALL_ERRORS as e:
            raise _failure("get_channel_type", e) from e

    async def send_message(
        self, channel_type: str, channel_id: str, message: Dict[str, Any], user_id: str
    ) -> Dict[str, Any]:
        channel = self.client.channel(channel_type, channel_id)
        try:
            return await channel.send_message(message, user_id)
        except _CALL_ERRORS as e:
            raise _failure("send_message", e) from e

    async def close(self) -> None:
        await self.client.close()


def split_cid(cid: Optional[str]) -> Optional[tuple]:
    """Split ``"<type>:<id>"`` on the first colon; None if it has no colon."""
    if not cid or ":" not in cid:
        return None
    channel_type, channel_id = cid.split(":", 1)
    if not channel_type or not channel_id:
        return None
    return channel_type, channel_id


def get_chat_backend(request: Request) -> ChatBackend:
    """Dependency for getting the chat backend created at startup."""
    return request.app.state.chat_backend
