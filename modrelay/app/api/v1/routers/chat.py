import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ....config import Settings, get_settings
from ....moderation.errors import CollaboratorCallFailure
from ....services.stream import ChatBackend, get_chat_backend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

DEBUG_ROOM = "debug-room"
DEBUG_MEMBERS = ["alice", "bob", "charlie"]
DEBUG_TEXT = "this is a test with badword: fuck"


# Models


class TokenResponse(BaseModel):
    token: str
    apiKey: str


class ChannelRequest(BaseModel):
    channelId: Optional[str] = None
    members: List[str] = Field(default_factory=list)


class ChannelResponse(BaseModel):
    cid: str


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("/token", response_model=TokenResponse)
async def issue_token(
    user_id: Optional[str] = None,
    backend: ChatBackend = Depends(get_chat_backend),
    settings: Settings = Depends(get_settings),
):
    """
    Mint a client token for ``user_id``.
    """
    if not user_id:
        return _error(400, "user_id required")
    return TokenResponse(token=backend.create_token(str(user_id)), apiKey=settings.STREAM_KEY)


@router.post("/channel", response_model=ChannelResponse)
async def ensure_channel(
    body: ChannelRequest,
    backend: ChatBackend = Depends(get_chat_backend),
    settings: Settings = Depends(get_settings),
):
    """
    Ensure a channel of the configured type exists with the given members.

    The first member is recorded as creator; the system user is always added
    so notices can be posted into the channel.
    """
    if not body.channelId or not body.members:
        return _error(400, "channelId and members[] required")

    created_by_id = body.members[0]
    unique = list(dict.fromkeys([*body.members, created_by_id, settings.SYSTEM_USER_ID]))
    try:
        await backend.upsert_users([{"id": uid, "name": uid} for uid in unique])
        cid = await backend.ensure_channel(settings.CHANNEL_TYPE, body.channelId, created_by_id, unique)
        try:
            await backend.add_members(settings.CHANNEL_TYPE, body.channelId, body.members)
        except CollaboratorCallFailure as e:
            logger.warning("[POST /channel] add_members failed for %s: %s", cid, e)
        return ChannelResponse(cid=cid)
    except CollaboratorCallFailure as e:
        logger.error("[POST /channel] error: %s", e)
        return _error(500, e.message or "failed to create/ensure channel")


@router.post("/flag/{message_id}")
async def request_flag(
    message_id: str,
    backend: ChatBackend = Depends(get_chat_backend),
    settings: Settings = Depends(get_settings),
) -> Any:
    """
    Flag a message on behalf of the system user, e.g. after a client-side match.
    """
    try:
        out = await backend.flag_message(message_id, user_id=settings.SYSTEM_USER_ID)
    except CollaboratorCallFailure as e:
        return _error(500, e.message)
    return {"ok": True, "out": dict(out or {})}


@router.post("/debug/flag")
async def debug_flag(
    backend: ChatBackend = Depends(get_chat_backend),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Post a profane test message as ``alice`` into ``debug-room``.
    """
    if not settings.DEBUG_ROUTES_ENABLED:
        raise HTTPException(status_code=404, detail="Not Found")

    members = [settings.SYSTEM_USER_ID, *DEBUG_MEMBERS]
    try:
        await backend.upsert_users([{"id": uid, "name": uid} for uid in members])
        cid = await backend.ensure_channel(settings.CHANNEL_TYPE, DEBUG_ROOM, settings.SYSTEM_USER_ID, members)
        resp = await backend.send_message(settings.CHANNEL_TYPE, DEBUG_ROOM, {"text": DEBUG_TEXT}, "alice")
    except CollaboratorCallFailure as e:
        logger.error("/debug/flag error: %s", e)
        return _error(500, e.message)

    try:
        t = await backend.get_channel_type(settings.CHANNEL_TYPE) or {}
    except CollaboratorCallFailure:
        t = {}
    return {
        "sent_message_id": ((resp or {}).get("message") or {}).get("id"),
        "cid": cid,
        "channel_type_settings": {
            "blocklist": t.get("blocklist"),
            "blocklist_behavior": t.get("blocklist_behavior"),
        },
    }
