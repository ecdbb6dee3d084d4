import asyncio
import logging
import re

from ..config import Settings
from ..services.stream import ChatBackend
from .errors import CollaboratorCallFailure, PolicyReconciliationFailure
from .flag_memory import FlagMemory

logger = logging.getLogger(__name__)

FALLBACK_BLOCKLIST = "profanity_en_2020_v1"
# Stream "input error" code returned for an unknown blocklist
INVALID_BLOCKLIST_CODE = 4
_INVALID_BLOCKLIST_RE = re.compile(r"invalid block ?list name", re.I)


def _is_invalid_blocklist(err: CollaboratorCallFailure) -> bool:
    return err.code == INVALID_BLOCKLIST_CODE or bool(_INVALID_BLOCKLIST_RE.search(err.message or ""))


async def _apply_blocklist(backend: ChatBackend, channel_type: str, blocklist: str) -> None:
    # "flag" stores and annotates; it never blocks delivery
    await backend.update_channel_type(channel_type, blocklist=blocklist, blocklist_behavior="flag")
    logger.info('[init] %s blocklist="%s" behavior=flag', channel_type, blocklist)


async def reconcile_blocklist(backend: ChatBackend, channel_type: str, blocklist: str) -> str:
    """Point ``channel_type`` at ``blocklist``, falling back once if the name is rejected.

    Returns the blocklist that was applied. Raises PolicyReconciliationFailure
    when neither could be applied.
    """
    try:
        await _apply_blocklist(backend, channel_type, blocklist)
        return blocklist
    except CollaboratorCallFailure as e:
        if not _is_invalid_blocklist(e) or blocklist == FALLBACK_BLOCKLIST:
            raise PolicyReconciliationFailure(str(e)) from e
        logger.warning('[init] "%s" invalid. Falling back to "%s".', blocklist, FALLBACK_BLOCKLIST)

    try:
        await _apply_blocklist(backend, channel_type, FALLBACK_BLOCKLIST)
    except CollaboratorCallFailure as e:
        raise PolicyReconciliationFailure(str(e)) from e
    return FALLBACK_BLOCKLIST


async def ensure_channel_type_policy(backend: ChatBackend, settings: Settings) -> None:
    channel_type = settings.CHANNEL_TYPE
    try:
        await reconcile_blocklist(backend, channel_type, settings.BLOCKLIST_NAME)
    except PolicyReconciliationFailure as e:
        logger.error("[init] failed to update channel type: %s", e)

    try:
        t = await backend.get_channel_type(channel_type) or {}
    except CollaboratorCallFailure as e:
        logger.warning("[init] Could not fetch channel type details: %s", e)
        return
    logger.info(
        "[init] Effective channel type: %s",
        {
            "type": t.get("channel_type") or channel_type,
            "blocklist": t.get("blocklist"),
            "blocklist_behavior": t.get("blocklist_behavior"),
        },
    )


async def ensure_system_user(backend: ChatBackend, settings: Settings) -> None:
    try:
        await backend.upsert_users([{"id": settings.SYSTEM_USER_ID, "name": settings.SYSTEM_USER_NAME}])
    except CollaboratorCallFailure as e:
        logger.warning("[init] could not upsert %s: %s", settings.SYSTEM_USER_ID, e)


async def sweep_periodically(memory: FlagMemory, interval_s: float) -> None:
    """Evict expired flag-memory entries every ``interval_s`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval_s)
        memory.sweep()
