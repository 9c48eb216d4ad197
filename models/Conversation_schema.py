# models/Conversation_schema.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from models.Message_schema import Message


class Conversation(BaseModel):
    conversation_id: str
    created_at: datetime
    updated_at: datetime
    message_count: int = 0
    metadata: dict = Field(default_factory=dict)


class ConversationSnapshot(Conversation):
    """
    Conversation plus its messages, as cached in Redis.
    message_limit is None when `messages` is the full history.
    """
    messages: List[Message] = Field(default_factory=list)
    message_limit: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.message_limit is None
