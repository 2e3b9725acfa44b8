# AI package

from app.ai.message_service import MessageService, MessageResult

__all__ = [
    "MessageService",
    "MessageResult",
]
