from models.Message_schema import Message, MessageSender
from models.Conversation_schema import Conversation, ConversationSnapshot
from models.Chat_schema import (
    MAX_MESSAGE_LENGTH,
    ChatMessageRequest,
    ChatMessageResponse,
    ConversationHistoryResponse,
    ErrorDetail,
    ErrorResponse,
    MessageResponse,
)
