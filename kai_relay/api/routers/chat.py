import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from kai_relay.api.dependencies.services import get_chat_service, get_title_service
from kai_relay.api.schemas.chat import ChatMessageRequest, TitleRequest
from kai_relay.services.contracts import ChatServiceProtocol, TitleServiceProtocol
from kai_relay.services.errors import ConversationBusyError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["chat"])

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


@router.post(
    "/chat",
    summary="Stream an assistant reply for a conversation",
    description=(
        "Persists the user message, streams assistant fragments as server-sent events, "
        "then commits the sanitized reply to the conversation."
    ),
)
async def chat(
    payload: ChatMessageRequest,
    chat_service: ChatServiceProtocol = Depends(get_chat_service),
) -> StreamingResponse:
    # Busy conversations are rejected before any stream framing is sent.
    try:
        stream = await chat_service.open_chat(payload.conversation_id, payload.message)
    except ConversationBusyError as exc:
        logger.info("chat rejected; conversation busy", extra={"conversation_id": payload.conversation_id})
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="a reply is already streaming for this conversation",
        ) from exc

    return StreamingResponse(
        stream.body,
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(stream.close),
    )


@router.post(
    "/generate-title",
    summary="Stream a short title derived from a seed message",
)
async def generate_title(
    payload: TitleRequest,
    title_service: TitleServiceProtocol = Depends(get_title_service),
) -> StreamingResponse:
    logger.info("title inference requested", extra={"conversation_id": payload.conversation_id})
    return StreamingResponse(
        title_service.stream_title(payload.message, payload.conversation_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
