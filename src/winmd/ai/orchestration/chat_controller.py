"""Glue between the document store transcripts and the conversation orchestrator."""

from __future__ import annotations

import logging
from typing import Callable, List, Set

from ...chat.message_model import GREETING_MESSAGE_ID, ChatMessage, MessageRole
from ...editor.document_store import DocumentStore
from .. import prompts
from .orchestrator import ConversationOrchestrator, TurnResult

__all__ = ["DocumentChatController", "TranscriptListener"]

LOGGER = logging.getLogger(__name__)

TranscriptListener = Callable[[str, ChatMessage], None]


class DocumentChatController:
    """Runs chat turns against a document and records them in its transcript.

    The user's message is appended before the request starts. Tool activity is
    appended as it completes and the final reply is appended last. If the
    document is discarded while a request is in flight the late writes are
    dropped. Only one request per document may be in flight at a time.
    """

    def __init__(self, store: DocumentStore, orchestrator: ConversationOrchestrator) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._in_flight: Set[str] = set()
        self._listeners: List[TranscriptListener] = []

    @property
    def orchestrator(self) -> ConversationOrchestrator:
        return self._orchestrator

    def is_busy(self, document_id: str) -> bool:
        return document_id in self._in_flight

    def add_listener(self, listener: TranscriptListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TranscriptListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def ensure_greeting(self, document_id: str) -> ChatMessage | None:
        """Seed an empty transcript with the assistant greeting."""

        document = self._store.get(document_id)
        if document is None or not document.is_file or document.chat_history:
            return None
        message = ChatMessage(
            role=MessageRole.ASSISTANT,
            text=prompts.greeting(document.name, self._language),
            id=GREETING_MESSAGE_ID,
        )
        self._append(document_id, message)
        return message

    async def send(self, document_id: str, text: str) -> TurnResult | None:
        """Send ``text`` about the document; returns ``None`` when the send is rejected."""

        prompt = (text or "").strip()
        if not prompt:
            return None
        if self.is_busy(document_id):
            LOGGER.info("Chat request for %s ignored: a reply is still pending", document_id)
            return None
        document = self._store.require(document_id)
        history = list(document.chat_history)
        content = document.content
        self._append(document_id, ChatMessage(role=MessageRole.USER, text=prompt))
        self._in_flight.add(document_id)
        try:
            result = await self._orchestrator.run_turn(
                content,
                history,
                prompt,
                on_message=lambda message: self._append(document_id, message),
            )
        finally:
            self._in_flight.discard(document_id)
        self._append(document_id, ChatMessage(role=MessageRole.ASSISTANT, text=result.text))
        return result

    async def summarize(self, document_id: str) -> TurnResult | None:
        if self.is_busy(document_id):
            LOGGER.info("Summary for %s ignored: a reply is still pending", document_id)
            return None
        document = self._store.require(document_id)
        content = document.content
        request = ChatMessage(
            role=MessageRole.USER, text=prompts.summarize_request_text(self._language)
        )
        self._append(document_id, request)
        self._in_flight.add(document_id)
        try:
            result = await self._orchestrator.summarize(content)
        finally:
            self._in_flight.discard(document_id)
        self._append(document_id, ChatMessage(role=MessageRole.ASSISTANT, text=result.text))
        return result

    @property
    def _language(self) -> str:
        return self._orchestrator.settings.language

    def _append(self, document_id: str, message: ChatMessage) -> None:
        if not self._store.append_message(document_id, message):
            return
        for listener in list(self._listeners):
            listener(document_id, message)
