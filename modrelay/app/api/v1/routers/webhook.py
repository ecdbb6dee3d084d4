import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from ....config import Settings, get_settings
from ....moderation.classify import classify, describe
from ....moderation.dispatcher import NoticeDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

OK = "ok"
IGNORED = "ignored"


@router.post("/webhook", response_class=PlainTextResponse)
async def webhook(
    request: Request,
    dispatcher: NoticeDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> PlainTextResponse:
    """
    Receive a Stream webhook and post a moderation notice if one is due.

    Always answers 200 so the provider never retries or disables the hook;
    the body is ``ok`` when the event was acted on and ``ignored`` otherwise.
    """
    try:
        # Stream may send a non-JSON content type, so parse the raw body
        body = await request.body()
        event = classify(body, dispatcher.memory, settings.SYSTEM_USER_ID)
        if event.is_ignorable:
            logger.debug("[webhook] %s", describe(event))
            return PlainTextResponse(IGNORED)

        logger.info("[webhook] %s", describe(event))
        await dispatcher.handle(event)
        return PlainTextResponse(OK)
    except Exception as e:
        logger.error("[webhook] unexpected error: %s", e, exc_info=True)
        return PlainTextResponse(IGNORED)
