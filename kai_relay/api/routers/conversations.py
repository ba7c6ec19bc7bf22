import logging

from fastapi import APIRouter, Depends, HTTPException, status

from kai_relay.api.dependencies.services import get_conversation_gate, get_conversation_store
from kai_relay.api.schemas.conversation import (
    Conversation,
    ConversationDeleteResponse,
    ConversationRenameRequest,
    ConversationUpsertRequest,
)
from kai_relay.services.contracts import ConversationStoreProtocol
from kai_relay.services.conversation_gate import ConversationGate
from kai_relay.services.errors import ConversationNotFoundError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["conversations"])


@router.post(
    "/conversation",
    response_model=Conversation,
    summary="Fetch or create a conversation",
    description="Idempotent upsert: an existing conversation is returned unchanged, an unknown id is created.",
)
async def upsert_conversation(
    payload: ConversationUpsertRequest,
    store: ConversationStoreProtocol = Depends(get_conversation_store),
) -> Conversation:
    return store.upsert(payload.conversation_id, payload.title)


@router.get("/conversations", response_model=list[Conversation])
async def list_conversations(
    store: ConversationStoreProtocol = Depends(get_conversation_store),
) -> list[Conversation]:
    return store.list()


@router.get("/conversation/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: str,
    store: ConversationStoreProtocol = Depends(get_conversation_store),
) -> Conversation:
    try:
        return store.get(conversation_id)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="conversation not found") from exc


@router.patch("/conversation/{conversation_id}", response_model=Conversation)
async def rename_conversation(
    conversation_id: str,
    payload: ConversationRenameRequest,
    store: ConversationStoreProtocol = Depends(get_conversation_store),
    gate: ConversationGate = Depends(get_conversation_gate),
) -> Conversation:
    async with gate.hold(conversation_id):
        try:
            return store.rename(conversation_id, payload.title)
        except ConversationNotFoundError as exc:
            logger.info("rename of unknown conversation", extra={"conversation_id": conversation_id})
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="conversation not found") from exc


@router.delete("/conversation/{conversation_id}", response_model=ConversationDeleteResponse)
async def delete_conversation(
    conversation_id: str,
    store: ConversationStoreProtocol = Depends(get_conversation_store),
    gate: ConversationGate = Depends(get_conversation_gate),
) -> ConversationDeleteResponse:
    async with gate.hold(conversation_id):
        removed = store.remove(conversation_id)
    if not removed:
        logger.info("delete of unknown conversation", extra={"conversation_id": conversation_id})
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="conversation not found")
    return ConversationDeleteResponse(success=True)
