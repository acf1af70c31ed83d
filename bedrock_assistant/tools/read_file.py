"""READ_FILE tool: hand a local file to the model as text or as a document."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from ..errors import DecodeError, ToolExecutionError
from ..logger import get_logger
from ..messages import Document, DocumentFormat, ToolResult
from ..structured import StructuredValue
from .base import as_object, require_string
from .schema import Property, PropertyType, ToolSchema, ToolSpec

_log = get_logger(__name__)

READ_FILE_NAME = "READ_FILE"
READ_FILE_DESCRIPTION = (
    "Read the contents of a file at the specified path. "
    "Use this when you need to examine the contents of an existing file."
)
DOCUMENT_NAME = "file_read"

READ_FILE_SPEC = ToolSpec(
    name=READ_FILE_NAME,
    description=READ_FILE_DESCRIPTION,
    input_schema=ToolSchema.build(
        {"path": Property(PropertyType.STRING, "The path of the file to read.")},
        ["path"],
    ),
)


def _read_bytes(path: Path) -> bytes:
    return path.read_bytes()


class FileReader:
    """Executor for READ_FILE. ``reader`` is the filesystem collaborator."""

    def __init__(self, reader: Callable[[Path], bytes] = _read_bytes):
        self.reader = reader

    def __call__(self, tool_use_id: str, input: StructuredValue) -> ToolResult:
        try:
            fields = as_object(READ_FILE_NAME, input)
            path = Path(require_string(READ_FILE_NAME, fields, "path", "path to read file from"))
        except ToolExecutionError as e:
            return ToolResult.error(tool_use_id, e.message)

        try:
            data = self.reader(path)
        except OSError as e:
            _log.warning("READ_FILE failed for %s: %s", path, e)
            return ToolResult.error(tool_use_id, str(e))

        doc_format = DocumentFormat.from_extension(path.suffix) if path.suffix else None
        if doc_format is not None:
            return ToolResult.success(
                tool_use_id, "File read.", Document(DOCUMENT_NAME, doc_format, data)
            )

        try:
            text = decode_utf8(data)
        except DecodeError as e:
            return ToolResult.error(tool_use_id, e.message)
        return ToolResult.success(tool_use_id, f"File read with Content: {text}")


def decode_utf8(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(READ_FILE_NAME, str(e))
