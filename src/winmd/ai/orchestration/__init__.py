"""Conversation orchestration for document chats."""

from .chat_controller import DocumentChatController
from .orchestrator import ConversationOrchestrator, TurnResult, TurnState

__all__ = ["ConversationOrchestrator", "DocumentChatController", "TurnResult", "TurnState"]
