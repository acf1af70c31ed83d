"""Typed stream events and the assembler that turns them back into turns.

A streamed assistant message arrives as many small events: a message start,
block headers, text and tool-input fragments, and a final stop carrying the
stop reason. ``StreamAssembler`` folds them, strictly in arrival order, into
the same ``Turn`` the non-streaming path produces.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from .errors import ProtocolError
from .logger import get_logger
from .messages import ContentBlock, Role, Text, ToolUse, Turn
from .structured import parse_tool_input

_log = get_logger(__name__)

__all__ = [
    "StopReason", "MessageStart", "ToolUseStart", "ContentBlockStart",
    "TextDelta", "ToolUseDelta", "ContentBlockDelta", "ContentBlockStop",
    "MessageStop", "Metadata", "StreamEvent",
    "AssemblerState", "StreamAssemblyState", "AssembledTurn", "StreamAssembler",
]


class StopReason(str, Enum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    CONTENT_FILTERED = "content_filtered"


@dataclass(frozen=True)
class MessageStart:
    role: Role = Role.ASSISTANT


@dataclass(frozen=True)
class ToolUseStart:
    tool_use_id: str
    name: str


@dataclass(frozen=True)
class ContentBlockStart:
    index: int
    start: Optional[ToolUseStart] = None


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolUseDelta:
    input: str


@dataclass(frozen=True)
class ContentBlockDelta:
    index: int
    delta: Union[TextDelta, ToolUseDelta]


@dataclass(frozen=True)
class ContentBlockStop:
    index: int


@dataclass(frozen=True)
class MessageStop:
    stop_reason: StopReason


@dataclass(frozen=True)
class Metadata:
    usage: Dict[str, int] = field(default_factory=dict)


StreamEvent = Union[
    MessageStart, ContentBlockStart, ContentBlockDelta, ContentBlockStop, MessageStop, Metadata
]


class AssemblerState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    TOOL_PENDING = "tool_pending"
    COMPLETE = "complete"


@dataclass
class _PendingToolUse:
    tool_id: str
    tool_name: str
    fragments: List[str] = field(default_factory=list)

    @property
    def partial_json_text(self) -> str:
        return "".join(self.fragments)


@dataclass
class StreamAssemblyState:
    """Accumulator for one streamed message. Built at MessageStart, dropped at MessageStop."""

    text_fragments: List[str] = field(default_factory=list)
    tool_uses: Dict[int, _PendingToolUse] = field(default_factory=dict)
    last_tool_index: Optional[int] = None

    @property
    def partial_assistant_text(self) -> str:
        return "".join(self.text_fragments)

    def start_tool(self, index: int, start: ToolUseStart) -> None:
        self.tool_uses[index] = _PendingToolUse(start.tool_use_id, start.name)
        self.last_tool_index = index

    def append_tool_input(self, index: int, fragment: str) -> None:
        pending = self.tool_uses.get(index)
        if pending is None and self.last_tool_index is not None:
            # Some transports do not number blocks; fragments then belong to the open tool.
            pending = self.tool_uses[self.last_tool_index]
        if pending is None:
            raise ProtocolError("Tool input fragment arrived without a tool use block")
        pending.fragments.append(fragment)


@dataclass(frozen=True)
class AssembledTurn:
    turn: Turn
    stop_reason: StopReason

    @property
    def tool_call_ready(self) -> bool:
        return bool(self.turn.tool_uses)


class StreamAssembler:
    """State machine: IDLE -> STREAMING -> TOOL_PENDING | COMPLETE.

    ``feed`` returns an ``AssembledTurn`` on MessageStop and ``None`` for every
    other event. Event kinds it does not know are ignored.
    """

    def __init__(self):
        self.state = AssemblerState.IDLE
        self._acc: Optional[StreamAssemblyState] = None

    @property
    def accumulator(self) -> Optional[StreamAssemblyState]:
        return self._acc

    def feed(self, event: object) -> Optional[AssembledTurn]:
        match event:
            case MessageStart():
                self._acc = StreamAssemblyState()
                self.state = AssemblerState.STREAMING
            case ContentBlockStart(start=ToolUseStart() as start):
                self._open().start_tool(event.index, start)
            case ContentBlockDelta(delta=TextDelta(text=text)):
                self._open().text_fragments.append(text)
            case ContentBlockDelta(delta=ToolUseDelta(input=fragment)):
                self._open().append_tool_input(event.index, fragment)
            case MessageStop(stop_reason=reason):
                return self._finish(reason)
            case _:
                _log.debug("Ignoring stream event: %s", type(event).__name__)
        return None

    def _open(self) -> StreamAssemblyState:
        if self.state is not AssemblerState.STREAMING or self._acc is None:
            raise ProtocolError(f"Stream content received while {self.state.value}")
        return self._acc

    def _finish(self, reason: StopReason) -> AssembledTurn:
        acc = self._open()
        text = acc.partial_assistant_text

        if reason is StopReason.TOOL_USE:
            if not acc.tool_uses:
                raise ProtocolError("Stop reason is tool_use but no tool use block was streamed")
            blocks: List[ContentBlock] = [Text(text)] if text else []
            for pending in acc.tool_uses.values():
                blocks.append(ToolUse(
                    id=pending.tool_id,
                    name=pending.tool_name,
                    input=parse_tool_input(pending.partial_json_text),
                ))
            self.state = AssemblerState.TOOL_PENDING
        else:
            blocks = [Text(text)]
            self.state = AssemblerState.COMPLETE

        self._acc = None
        return AssembledTurn(Turn.assistant(*blocks), reason)
