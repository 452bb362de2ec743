"""Tool-calling conversation loop shared by every backend adapter."""

from __future__ import annotations

import inspect
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ...chat.message_model import ChatMessage, MessageRole
from ...services.settings import Settings
from .. import prompts
from ..backends import ChatBackend, ModelMessage, ToolCall, build_backend
from ..errors import AIError, MaxTurnsExceededError, ToolExecutionError
from ..tools.registry import ToolRegistry
from ..tools.types import ToolDescriptor

__all__ = [
    "ConversationOrchestrator",
    "TurnResult",
    "TurnState",
    "MessageCallback",
    "BackendFactory",
]

LOGGER = logging.getLogger(__name__)

MessageCallback = Callable[[ChatMessage], Awaitable[None] | None]
BackendFactory = Callable[[Settings], ChatBackend]


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class TurnResult:
    """Outcome of a chat turn or a summary request.

    ``text`` is always the reply to show in the transcript, including the
    localized failure message when ``state`` is :attr:`TurnState.FAILED`.
    """

    text: str
    state: TurnState
    turns: int = 0
    error: Optional[BaseException] = None
    messages: List[ChatMessage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is TurnState.DONE


class ConversationOrchestrator:
    """Runs model turns until the model answers without requesting tools.

    Each turn sends the system context, the replayable history and the tool
    catalog to the backend chosen by ``Settings.provider``. Requested tools are
    executed one after another in the order the model listed them, and their
    results are fed back on the next turn. Failures never escape: they end the
    turn with a localized assistant reply.
    """

    def __init__(
        self,
        settings: Settings,
        registry: ToolRegistry | None = None,
        *,
        backend_factory: BackendFactory | None = None,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._backend_factory = backend_factory or build_backend
        self._runs: Dict[int, TurnState] = {}
        self._run_ids = itertools.count(1)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def registry(self) -> ToolRegistry | None:
        return self._registry

    @property
    def state(self) -> TurnState:
        """State of the most recently started run still in flight, else IDLE."""

        return next(reversed(self._runs.values()), TurnState.IDLE)

    @property
    def in_flight(self) -> int:
        return len(self._runs)

    @property
    def max_turns(self) -> int:
        return max(1, int(self._settings.max_turns))

    def update_settings(self, settings: Settings) -> None:
        self._settings = settings

    async def run_turn(
        self,
        document_content: str,
        history: Sequence[ChatMessage],
        user_text: str,
        *,
        on_message: MessageCallback | None = None,
    ) -> TurnResult:
        """Answer ``user_text`` about ``document_content`` given the prior ``history``."""

        language = self._settings.language
        produced: List[ChatMessage] = []
        turns = 0
        backend: ChatBackend | None = None
        run_id = next(self._run_ids)
        self._runs[run_id] = TurnState.AWAITING_MODEL
        try:
            tools = await self._registry.list_tools() if self._registry is not None else []
            system_context = prompts.build_system_context(
                document_content,
                tool_names=[tool.name for tool in tools],
                language=language,
            )
            messages: List[ModelMessage] = [
                ModelMessage(role=message.role.value, text=message.text)
                for message in history
                if message.replayable
            ]
            messages.append(ModelMessage(role="user", text=user_text))
            backend = self._backend_factory(self._settings)
            catalog = _index_tools(tools)

            while True:
                turns += 1
                self._runs[run_id] = TurnState.AWAITING_MODEL
                response = await backend.send(system_context, messages, tools)
                calls = backend.extract_tool_calls(response)
                if not calls:
                    self._runs[run_id] = TurnState.DONE
                    text = response.text or prompts.empty_reply_text(language)
                    LOGGER.debug("Chat turn finished after %d model turn(s)", turns)
                    return TurnResult(text=text, state=TurnState.DONE, turns=turns, messages=produced)

                if turns >= self.max_turns:
                    # No model turn left to receive tool results.
                    raise MaxTurnsExceededError(self.max_turns)
                self._runs[run_id] = TurnState.EXECUTING_TOOLS
                messages.append(backend.assistant_message(response))
                await self._emit(
                    on_message,
                    produced,
                    ChatMessage(
                        role=MessageRole.TOOL,
                        text=response.text,
                        tool_calls=[call.to_dict() for call in calls],
                    ),
                )
                for call in calls:
                    result = await self._execute_tool(call, catalog)
                    messages.append(backend.tool_result_message(call, result))
                    await self._emit(
                        on_message,
                        produced,
                        ChatMessage(
                            role=MessageRole.TOOL,
                            text=result,
                            tool_call_id=call.id,
                            tool_name=call.name,
                        ),
                    )
        except AIError as exc:
            LOGGER.warning("Chat turn failed (%s): %s", exc.kind, exc)
            return self._failed(run_id, exc, turns, produced)
        except Exception as exc:
            LOGGER.exception("Unexpected failure during chat turn")
            return self._failed(run_id, exc, turns, produced)
        finally:
            self._runs.pop(run_id, None)
            if backend is not None:
                await _close_backend(backend)

    async def summarize(self, document_content: str) -> TurnResult:
        """One-shot, tool-less summary of ``document_content``."""

        language = self._settings.language
        backend: ChatBackend | None = None
        run_id = next(self._run_ids)
        self._runs[run_id] = TurnState.AWAITING_MODEL
        try:
            backend = self._backend_factory(self._settings)
            response = await backend.send(
                prompts.summary_system_prompt(language),
                [ModelMessage(role="user", text=prompts.summary_user_prompt(document_content, language))],
                [],
            )
            text = response.text or prompts.empty_summary_text(language)
            return TurnResult(text=text, state=TurnState.DONE, turns=1)
        except Exception as exc:
            if isinstance(exc, AIError):
                LOGGER.warning("Summary failed (%s): %s", exc.kind, exc)
            else:
                LOGGER.exception("Unexpected failure while summarizing")
            return TurnResult(
                text=prompts.format_error(exc, language, summary=True),
                state=TurnState.FAILED,
                turns=1,
                error=exc,
            )
        finally:
            self._runs.pop(run_id, None)
            if backend is not None:
                await _close_backend(backend)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _execute_tool(self, call: ToolCall, catalog: Dict[str, ToolDescriptor]) -> str:
        descriptor = catalog.get(call.name)
        if descriptor is None or self._registry is None:
            LOGGER.warning("Model requested unknown tool %r", call.name)
            return f"Error: Tool '{call.name}' is not available."
        try:
            return await self._registry.invoke(descriptor, call.arguments)
        except ToolExecutionError as exc:
            return f"Error: {exc}"
        except Exception as exc:
            LOGGER.exception("Tool %s failed unexpectedly", call.name)
            return f"Error: {exc}"

    async def _emit(
        self,
        callback: MessageCallback | None,
        produced: List[ChatMessage],
        message: ChatMessage,
    ) -> None:
        produced.append(message)
        if callback is None:
            return
        result = callback(message)
        if inspect.isawaitable(result):
            await result

    def _failed(
        self, run_id: int, error: BaseException, turns: int, produced: List[ChatMessage]
    ) -> TurnResult:
        self._runs[run_id] = TurnState.FAILED
        return TurnResult(
            text=prompts.format_error(error, self._settings.language),
            state=TurnState.FAILED,
            turns=turns,
            error=error,
            messages=produced,
        )


def _index_tools(tools: Sequence[ToolDescriptor]) -> Dict[str, ToolDescriptor]:
    catalog: Dict[str, ToolDescriptor] = {}
    for tool in tools:
        if tool.name in catalog:
            LOGGER.debug(
                "Tool %s offered by %s and %s; using the first",
                tool.name,
                catalog[tool.name].server_name,
                tool.server_name,
            )
            continue
        catalog[tool.name] = tool
    return catalog


async def _close_backend(backend: ChatBackend) -> None:
    try:
        await backend.aclose()
    except Exception as exc:
        LOGGER.warning("Failed to close %s backend: %s", getattr(backend, "name", "?"), exc)
