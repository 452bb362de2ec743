"""Tests for chat transcript messages."""

from __future__ import annotations

from winmd.chat.message_model import GREETING_MESSAGE_ID, ChatMessage, MessageRole


def test_only_user_and_assistant_turns_are_replayed() -> None:
    assert ChatMessage(role=MessageRole.USER, text="q").replayable
    assert ChatMessage(role=MessageRole.ASSISTANT, text="a").replayable
    assert not ChatMessage(role=MessageRole.ASSISTANT, text="hi", id=GREETING_MESSAGE_ID).replayable
    assert not ChatMessage(role=MessageRole.SYSTEM, text="s").replayable
    assert not ChatMessage(role=MessageRole.TOOL, text="t").replayable


def test_tool_fields_round_trip() -> None:
    message = ChatMessage(
        role=MessageRole.TOOL,
        text="",
        tool_calls=[{"id": "c1", "name": "read", "arguments": {"path": "a.md"}}],
    )
    result = ChatMessage(role=MessageRole.TOOL, text="body", tool_call_id="c1", tool_name="read")

    assert ChatMessage.from_dict(message.to_dict()) == message
    assert ChatMessage.from_dict(result.to_dict()) == result
    assert "toolCalls" not in result.to_dict()


def test_from_dict_tolerates_legacy_and_unknown_roles() -> None:
    legacy = ChatMessage.from_dict({"role": "model", "text": "hello", "createdAt": "garbage"})
    unknown = ChatMessage.from_dict({"role": "narrator"})

    assert legacy.role is MessageRole.ASSISTANT
    assert legacy.id
    assert unknown.role is MessageRole.SYSTEM
    assert unknown.text == ""
