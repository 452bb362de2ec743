"""Prompt templates and localized assistant strings."""

from __future__ import annotations

from typing import Mapping, Sequence

from .errors import AIError, CredentialError, ErrorKind, MaxTurnsExceededError

__all__ = [
    "SUPPORTED_LANGUAGES",
    "normalize_language",
    "language_directive",
    "build_system_context",
    "greeting",
    "summary_system_prompt",
    "summary_user_prompt",
    "summarize_request_text",
    "empty_reply_text",
    "empty_summary_text",
    "format_error",
]

SUPPORTED_LANGUAGES: tuple[str, ...] = ("en", "zh")

_CHAT_DIRECTIVES: Mapping[str, str] = {
    "en": "You must reply in English.",
    "zh": "You must reply in Simplified Chinese.",
}
_SUMMARY_DIRECTIVES: Mapping[str, str] = {
    "en": "Please reply in English.",
    "zh": "Please reply in Simplified Chinese.",
}

_STRINGS: Mapping[str, Mapping[str, str]] = {
    "en": {
        "greeting": (
            "Hi! I'm your Gemini AI assistant. I've read \"{file_name}\". "
            "Ask me to summarize it or explain any section."
        ),
        "summarize_request": "Summarize this document.",
        "empty_reply": "I couldn't understand that.",
        "empty_summary": "No summary generated.",
        "missing_key": "Please set your Gemini API Key in Settings.",
        "rejected_key": "Your API key was rejected. Please check it in Settings.",
        "max_turns": "Sorry, I stopped after {max_turns} steps without reaching an answer.",
        "chat_error": "Sorry, I encountered an error: {message}",
        "summary_error": "Error generating summary: {message}",
    },
    "zh": {
        "greeting": "你好！我是你的 Gemini AI 助手。我已阅读“{file_name}”。你可以让我总结它或解释任意章节。",
        "summarize_request": "总结这篇文档。",
        "empty_reply": "我没听懂。",
        "empty_summary": "未生成总结。",
        "missing_key": "请在设置中配置 Gemini API Key。",
        "rejected_key": "API Key 被拒绝，请在设置中检查。",
        "max_turns": "抱歉，已执行 {max_turns} 步仍未得到答案。",
        "chat_error": "抱歉，遇到错误: {message}",
        "summary_error": "生成总结出错: {message}",
    },
}

_SYSTEM_CONTEXT = """You are a smart assistant integrated into a Markdown file viewer.
The user is currently viewing a file with the following content:

--- START OF FILE ---
{content}
--- END OF FILE ---

Answer the user's questions based on the file content provided above. If the answer is not in the file, use your general knowledge but mention that it's not in the file.
{tools}{directive}"""

_TOOLS_SECTION = (
    "You can call the following tools when they help answer the question: {names}.\n"
)


def normalize_language(language: str | None) -> str:
    value = (language or "").strip().lower()
    return value if value in SUPPORTED_LANGUAGES else SUPPORTED_LANGUAGES[0]


def _text(key: str, language: str | None) -> str:
    return _STRINGS[normalize_language(language)][key]


def language_directive(language: str | None) -> str:
    return _CHAT_DIRECTIVES[normalize_language(language)]


def build_system_context(
    content: str,
    *,
    tool_names: Sequence[str] = (),
    language: str | None = "en",
) -> str:
    """Return the system instruction framing the active document for a chat turn."""

    tools = _TOOLS_SECTION.format(names=", ".join(tool_names)) if tool_names else ""
    return _SYSTEM_CONTEXT.format(
        content=content,
        tools=tools,
        directive=language_directive(language),
    )


def greeting(file_name: str, language: str | None = "en") -> str:
    return _text("greeting", language).format(file_name=file_name)


def summary_system_prompt(language: str | None = "en") -> str:
    directive = _SUMMARY_DIRECTIVES[normalize_language(language)]
    return f"You are a helpful desktop assistant. Keep summaries professional and structured. {directive}"


def summary_user_prompt(content: str, language: str | None = "en") -> str:
    directive = _SUMMARY_DIRECTIVES[normalize_language(language)]
    return (
        "Please provide a concise summary of the following Markdown document. "
        f"Highlight key points and potential action items if any. {directive}"
        f"\n\nDocument Content:\n{content}"
    )


def summarize_request_text(language: str | None = "en") -> str:
    return _text("summarize_request", language)


def empty_reply_text(language: str | None = "en") -> str:
    return _text("empty_reply", language)


def empty_summary_text(language: str | None = "en") -> str:
    return _text("empty_summary", language)


def format_error(error: BaseException, language: str | None = "en", *, summary: bool = False) -> str:
    """Render ``error`` as the assistant reply shown in the transcript."""

    if isinstance(error, CredentialError):
        if error.kind == ErrorKind.CREDENTIAL_MISSING:
            return _text("missing_key", language)
        return _text("rejected_key", language)
    if isinstance(error, MaxTurnsExceededError):
        return _text("max_turns", language).format(max_turns=error.max_turns)
    message = str(error) or error.__class__.__name__
    if not isinstance(error, AIError):
        message = f"{error.__class__.__name__}: {message}"
    key = "summary_error" if summary else "chat_error"
    return _text(key, language).format(message=message)
