# services/exceptions.py
from typing import List, Optional


GENERIC_ERROR_MESSAGE = "Please try again later or contact support"
HISTORY_ERROR_MESSAGE = "Failed to retrieve conversation"


class ChatServiceError(Exception):
    """Base class for errors the chat pipeline reports to its caller."""

    public_message = "An error occurred processing your message"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)
        if message:
            self.public_message = message


class ValidationError(ChatServiceError):
    public_message = "Invalid request"

    def __init__(self, message: Optional[str] = None, details: Optional[List[dict]] = None):
        super().__init__(message)
        # [{"path": [...], "message": "..."}]
        self.details = details or []


class MissingParameterError(ValidationError):
    def __init__(self, parameter: str):
        super().__init__(f"{parameter} is required")
        self.parameter = parameter


class SessionNotFoundError(ChatServiceError):
    public_message = "Session not found"

    def __init__(self, session_id: str):
        super().__init__()
        self.session_id = session_id


class InternalError(ChatServiceError):
    """
    Wraps unexpected collaborator failures (storage down, etc.).
    Only the generic message ever leaves the process; the cause is chained.
    """
