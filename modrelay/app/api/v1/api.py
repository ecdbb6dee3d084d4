from fastapi import APIRouter

from .routers import chat, webhook

api_router = APIRouter()

# Served at the root: the mobile client and the Stream dashboard use these paths
api_router.include_router(webhook.router)
api_router.include_router(chat.router)
