"""Chat transcript models."""

from .message_model import GREETING_MESSAGE_ID, ChatMessage, MessageRole

__all__ = ["GREETING_MESSAGE_ID", "ChatMessage", "MessageRole"]
