# api/chat/chat.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from models import (
    ChatMessageRequest,
    ChatMessageResponse,
    ConversationHistoryResponse,
    ErrorResponse,
    MessageResponse,
)
from services.chat_service import ChatService, get_chat_service

router = APIRouter(prefix="/api/chat", tags=["chat"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.post("/message", response_model=ChatMessageResponse, responses=ERROR_RESPONSES)
async def send_message(
    body: ChatMessageRequest,
    chat_service: ChatService = Depends(get_chat_service),
):
    """Send a message; omit sessionId to start a new conversation."""
    result = await chat_service.handle_message(body.message, body.session_id)
    return ChatMessageResponse(
        reply=result.reply,
        session_id=result.session_id,
        message_id=result.message_id,
        timestamp=result.timestamp,
    )


@router.get("/message", response_model=ConversationHistoryResponse, responses=ERROR_RESPONSES)
async def get_history(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    chat_service: ChatService = Depends(get_chat_service),
):
    """Full message history of a conversation, oldest first."""
    snapshot = await chat_service.get_history(session_id)
    return ConversationHistoryResponse(
        session_id=snapshot.conversation_id,
        created_at=snapshot.created_at,
        updated_at=snapshot.updated_at,
        messages=[
            MessageResponse(id=msg.message_id, sender=msg.sender, text=msg.text, timestamp=msg.timestamp)
            for msg in snapshot.messages
        ],
    )
