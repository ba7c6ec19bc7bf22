from fastapi import APIRouter

from kai_relay.api.routers.chat import router as chat_router
from kai_relay.api.routers.conversations import router as conversations_router

api_router = APIRouter()
api_router.include_router(conversations_router)
api_router.include_router(chat_router)
