"""Conversation data model: turns, content blocks and the append-only transcript."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from .errors import ProtocolError
from .structured import StructuredValue

__all__ = [
    "Role", "ToolResultStatus", "DocumentFormat",
    "Text", "ToolUse", "Document", "ToolResult", "ContentBlock", "ToolResultContent",
    "Turn", "Conversation",
]


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ToolResultStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class DocumentFormat(str, Enum):
    PDF = "pdf"
    CSV = "csv"
    DOC = "doc"
    DOCX = "docx"
    HTML = "html"
    MD = "md"
    TXT = "txt"
    XLS = "xls"
    XLSX = "xlsx"

    @classmethod
    def from_extension(cls, extension: str) -> Optional["DocumentFormat"]:
        """Map a file extension (with or without the dot) to a document format."""
        ext = extension.lower().lstrip(".")
        try:
            return cls(ext)
        except ValueError:
            return None

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]


_MEDIA_TYPES = {
    DocumentFormat.PDF: "application/pdf",
    DocumentFormat.CSV: "text/csv",
    DocumentFormat.DOC: "application/msword",
    DocumentFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    DocumentFormat.HTML: "text/html",
    DocumentFormat.MD: "text/markdown",
    DocumentFormat.TXT: "text/plain",
    DocumentFormat.XLS: "application/vnd.ms-excel",
    DocumentFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


# ── Content blocks ────────────────────────────────

@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class ToolUse:
    id: str
    name: str
    input: StructuredValue


@dataclass(frozen=True)
class Document:
    name: str
    format: DocumentFormat
    data: bytes


ToolResultContent = Union[Text, Document]


@dataclass(frozen=True)
class ToolResult:
    id: str
    status: ToolResultStatus
    content: Tuple[ToolResultContent, ...]

    @classmethod
    def success(cls, tool_use_id: str, text: str,
                *extra: ToolResultContent) -> "ToolResult":
        return cls(tool_use_id, ToolResultStatus.SUCCESS, (Text(text),) + extra)

    @classmethod
    def error(cls, tool_use_id: str, message: str) -> "ToolResult":
        return cls(tool_use_id, ToolResultStatus.ERROR, (Text(message),))

    @property
    def is_error(self) -> bool:
        return self.status is ToolResultStatus.ERROR

    @property
    def text(self) -> str:
        """All text content joined by newlines (documents omitted)."""
        return "\n".join(c.text for c in self.content if isinstance(c, Text))


ContentBlock = Union[Text, ToolUse, ToolResult]


# ── Turns ─────────────────────────────────────────

@dataclass(frozen=True)
class Turn:
    role: Role
    content: Tuple[ContentBlock, ...]

    def __post_init__(self):
        if not self.content:
            raise ProtocolError(f"{self.role.value} turn has no content")
        for block in self.content:
            if isinstance(block, ToolUse) and self.role is not Role.ASSISTANT:
                raise ProtocolError("Tool use blocks belong to assistant turns")
            if isinstance(block, ToolResult) and self.role is not Role.USER:
                raise ProtocolError("Tool result blocks belong to user turns")
        if any(isinstance(b, ToolResult) for b in self.content):
            if not all(isinstance(b, ToolResult) for b in self.content):
                raise ProtocolError("A tool result turn may only contain tool results")

    @classmethod
    def user_text(cls, text: str) -> "Turn":
        return cls(Role.USER, (Text(text),))

    @classmethod
    def assistant(cls, *blocks: ContentBlock) -> "Turn":
        return cls(Role.ASSISTANT, tuple(blocks))

    @classmethod
    def tool_results(cls, results: Sequence[ToolResult]) -> "Turn":
        return cls(Role.USER, tuple(results))

    @property
    def tool_uses(self) -> List[ToolUse]:
        return [b for b in self.content if isinstance(b, ToolUse)]

    @property
    def results(self) -> List[ToolResult]:
        return [b for b in self.content if isinstance(b, ToolResult)]

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, Text))

    @property
    def is_tool_result(self) -> bool:
        return bool(self.results)


# ── Transcript ────────────────────────────────────

@dataclass
class Conversation:
    """Append-only transcript. Owned by the conversation engine."""

    _turns: List[Turn] = field(default_factory=list)

    def append(self, turn: Turn) -> None:
        if turn.is_tool_result:
            self._check_results_answer_previous(turn)
        self._turns.append(turn)

    def _check_results_answer_previous(self, turn: Turn) -> None:
        previous = self._turns[-1] if self._turns else None
        if previous is None or previous.role is not Role.ASSISTANT or not previous.tool_uses:
            raise ProtocolError("Tool results must follow an assistant turn that used tools")
        expected = [use.id for use in previous.tool_uses]
        actual = [result.id for result in turn.results]
        if actual != expected:
            raise ProtocolError(
                f"Tool result ids {actual} do not match tool use ids {expected}"
            )

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))
