# models/Chat_schema.py
# Wire schemas for the chat endpoints. Field names are camelCase on the wire.
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import List, Optional

from models.Message_schema import MessageSender

MAX_MESSAGE_LENGTH = 2000


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessageRequest(CamelModel):
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    session_id: Optional[str] = None


class ChatMessageResponse(CamelModel):
    reply: str
    session_id: str
    message_id: str
    timestamp: datetime


class MessageResponse(CamelModel):
    id: str
    sender: MessageSender
    text: str
    timestamp: datetime


class ConversationHistoryResponse(CamelModel):
    session_id: str
    created_at: datetime
    updated_at: datetime
    messages: List[MessageResponse]


class ErrorDetail(BaseModel):
    path: List[str | int]
    message: str


class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None
    details: Optional[List[ErrorDetail]] = None
