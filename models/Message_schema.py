# models/Message_schema.py
from enum import Enum
from pydantic import BaseModel
from datetime import datetime


class MessageSender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    message_id: str
    conversation_id: str
    sender: MessageSender
    text: str
    timestamp: datetime
