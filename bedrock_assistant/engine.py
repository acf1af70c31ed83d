"""Conversation engine: owns the transcript and drives model turns and tool calls."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Protocol, Sequence, Tuple

from .errors import AssistantError, ProtocolError
from .llm import build_system_prompt
from .logger import get_logger
from .messages import Conversation, Text, ToolResult, ToolUse, Turn
from .streaming import (
    AssembledTurn, ContentBlockDelta, ContentBlockStart, Metadata,
    StreamAssembler, StreamEvent, TextDelta, ToolUseDelta, ToolUseStart,
)
from .structured import StructuredValue
from .tools.registry import ToolRegistry
from .tools.schema import ToolConfiguration

_log = get_logger(__name__)

__all__ = ["ConversationEngine", "EngineState", "RequestOutcome",
           "ChatSink", "NullSink", "ModelClient"]


class EngineState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING = "dispatching"
    AWAITING_TOOL_FOLLOWUP = "awaiting_tool_followup"


class ModelClient(Protocol):
    def converse(self, system: str, turns: Sequence[Turn],
                 tool_config: Optional[ToolConfiguration] = None) -> Turn: ...

    def converse_stream(self, system: str, turns: Sequence[Turn],
                        tool_config: Optional[ToolConfiguration] = None) -> Iterator[StreamEvent]: ...


class ChatSink(Protocol):
    """Receives human-readable notifications. Rendering is up to the implementation."""

    def assistant_text(self, text: str) -> None: ...
    def assistant_delta(self, text: str) -> None: ...
    def assistant_done(self) -> None: ...
    def tool_use(self, name: str, input: StructuredValue) -> None: ...
    def tool_use_started(self, name: str) -> None: ...
    def tool_input_delta(self, fragment: str) -> None: ...
    def tool_result(self, name: str, result: ToolResult, elapsed: float) -> None: ...
    def error(self, message: str) -> None: ...


class NullSink:
    def assistant_text(self, text): pass
    def assistant_delta(self, text): pass
    def assistant_done(self): pass
    def tool_use(self, name, input): pass
    def tool_use_started(self, name): pass
    def tool_input_delta(self, fragment): pass
    def tool_result(self, name, result, elapsed): pass
    def error(self, message): pass


@dataclass(frozen=True)
class RequestOutcome:
    """What one ``submit`` call produced."""

    text: Optional[str] = None
    tool_results: Tuple[ToolResult, ...] = field(default_factory=tuple)
    error: Optional[AssistantError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ConversationEngine:
    """Runs one user request at a time.

    Per request: append the user turn, request a model turn, and if it asks
    for tools, run them, append their results as one user turn and request
    exactly one follow-up turn. Tool use in the follow-up is not resolved.
    """

    def __init__(self, client: ModelClient, tools: ToolRegistry, *,
                 system_prompt: Optional[str] = None,
                 sink: Optional[ChatSink] = None,
                 stream: bool = True,
                 tool_parallelism: int = 1):
        self.client = client
        self.tools = tools
        self.system_prompt = system_prompt or build_system_prompt()
        self.sink: ChatSink = sink or NullSink()
        self.stream = stream
        self.tool_parallelism = max(1, int(tool_parallelism))
        self.state = EngineState.IDLE
        self._conversation = Conversation()

    @property
    def transcript(self) -> Tuple[Turn, ...]:
        return self._conversation.turns

    @property
    def tool_config(self) -> ToolConfiguration:
        return self.tools.configuration

    def submit(self, user_text: str, stream: Optional[bool] = None) -> RequestOutcome:
        """Handle one user request. Never raises for transport or protocol failures."""
        use_stream = self.stream if stream is None else stream
        self._conversation.append(Turn.user_text(user_text))
        try:
            return self._run_request(use_stream)
        except AssistantError as e:
            _log.error("Request failed (%s): %s", type(e).__name__, e)
            self.sink.error(str(e))
            return RequestOutcome(error=e)
        finally:
            self.state = EngineState.IDLE

    # ── Request flow ───────────────────────────

    def _run_request(self, stream: bool) -> RequestOutcome:
        self.state = EngineState.AWAITING_MODEL
        turn = self._request_turn(stream)
        self._conversation.append(turn)

        uses = turn.tool_uses
        if not uses:
            return RequestOutcome(text=turn.text)

        self.state = EngineState.DISPATCHING
        results = self._dispatch_all(uses)
        self._conversation.append(Turn.tool_results(results))

        self.state = EngineState.AWAITING_TOOL_FOLLOWUP
        followup = self._without_tool_use(self._request_turn(stream))
        self._conversation.append(followup)
        return RequestOutcome(text=followup.text, tool_results=tuple(results))

    def _request_turn(self, stream: bool) -> Turn:
        if stream:
            return self._stream_turn()
        turn = self.client.converse(self.system_prompt, self.transcript, self.tool_config)
        for block in turn.content:
            if isinstance(block, Text) and block.text:
                self.sink.assistant_text(block.text)
            elif isinstance(block, ToolUse):
                self.sink.tool_use(block.name, block.input)
        return turn

    def _stream_turn(self) -> Turn:
        assembler = StreamAssembler()
        assembled: Optional[AssembledTurn] = None
        events = self.client.converse_stream(self.system_prompt, self.transcript, self.tool_config)
        for event in events:
            self._show_event(event)
            result = assembler.feed(event)
            if result is None:
                continue
            if assembled is not None:
                raise ProtocolError("Stream carried more than one message")
            assembled = result
            self.sink.assistant_done()
        if assembled is None:
            raise ProtocolError("Stream ended before the message was complete")
        return assembled.turn

    def _show_event(self, event: StreamEvent) -> None:
        match event:
            case ContentBlockDelta(delta=TextDelta(text=text)):
                self.sink.assistant_delta(text)
            case ContentBlockDelta(delta=ToolUseDelta(input=fragment)):
                self.sink.tool_input_delta(fragment)
            case ContentBlockStart(start=ToolUseStart(name=name)):
                self.sink.tool_use_started(name)
            case Metadata(usage=usage):
                _log.debug("usage: %s", usage)

    @staticmethod
    def _without_tool_use(turn: Turn) -> Turn:
        uses = turn.tool_uses
        if not uses:
            return turn
        _log.warning("Follow-up asked for %d more tool call(s); not resolved: %s",
                     len(uses), ", ".join(use.name for use in uses))
        texts = [block for block in turn.content if isinstance(block, Text)]
        return Turn.assistant(*(texts or [Text("")]))

    # ── Tool dispatch ──────────────────────────

    def _dispatch_all(self, uses: List[ToolUse]) -> List[ToolResult]:
        # Unknown names abort the request before any tool runs.
        for use in uses:
            self.tools.resolve(use.name)

        if self.tool_parallelism > 1 and len(uses) > 1:
            workers = min(self.tool_parallelism, len(uses))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tool") as pool:
                timed = list(pool.map(self._timed_dispatch, uses))
        else:
            timed = [self._timed_dispatch(use) for use in uses]

        results = []
        for use, (result, elapsed) in zip(uses, timed):
            self.sink.tool_result(use.name, result, elapsed)
            results.append(result)
        return results

    def _timed_dispatch(self, use: ToolUse) -> Tuple[ToolResult, float]:
        t0 = time.monotonic()
        result = self.tools.dispatch(use)
        return result, time.monotonic() - t0
