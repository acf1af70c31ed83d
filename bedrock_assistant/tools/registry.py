"""Tool registry: a closed set of tool kinds, each bound to a spec and an executor."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Mapping, Optional

from ..errors import ConfigError, ProtocolError, UnknownToolError
from ..logger import get_logger
from ..messages import ToolResult, ToolUse
from .base import Executor
from .generate_image import GENERATE_IMAGE_SPEC, ImageGenerationTool, ImageGenerator
from .read_file import READ_FILE_SPEC, FileReader
from .run_code import RUN_CODE_SPEC, CodeRunner
from .schema import ToolConfiguration, ToolSpec, register

_log = get_logger(__name__)


class ToolKind(str, Enum):
    """Every tool the assistant knows. Adding a member requires an executor."""

    READ_FILE = READ_FILE_SPEC.name
    GENERATE_IMAGE = GENERATE_IMAGE_SPEC.name
    RUN_CODE = RUN_CODE_SPEC.name

    @classmethod
    def from_name(cls, name: str) -> "ToolKind":
        try:
            return cls(name)
        except ValueError:
            raise UnknownToolError(name)


TOOL_SPECS: Dict[ToolKind, ToolSpec] = {
    ToolKind.READ_FILE: READ_FILE_SPEC,
    ToolKind.GENERATE_IMAGE: GENERATE_IMAGE_SPEC,
    ToolKind.RUN_CODE: RUN_CODE_SPEC,
}


class ToolRegistry:
    """Single source of truth for tool schemas and dispatch."""

    def __init__(self, executors: Mapping[ToolKind, Executor],
                 specs: Optional[Mapping[ToolKind, ToolSpec]] = None):
        specs = dict(specs or TOOL_SPECS)
        missing = [kind.value for kind in ToolKind if kind not in executors or kind not in specs]
        if missing:
            raise ConfigError(f"No executor or spec registered for: {', '.join(missing)}")
        for kind, spec in specs.items():
            if spec.name != kind.value:
                raise ConfigError(f"Spec name {spec.name!r} does not match tool kind {kind.value!r}")
        self._executors: Dict[ToolKind, Executor] = {kind: executors[kind] for kind in ToolKind}
        self.configuration: ToolConfiguration = register([specs[kind] for kind in ToolKind])

    @classmethod
    def create(cls, image_generator: ImageGenerator, *,
               python_executable: str = "python3", code_timeout: int = 30,
               image_prompt_suffix: Optional[str] = None,
               open_images: bool = False) -> "ToolRegistry":
        return cls({
            ToolKind.READ_FILE: FileReader(),
            ToolKind.GENERATE_IMAGE: ImageGenerationTool(
                image_generator, prompt_suffix=image_prompt_suffix, open_images=open_images),
            ToolKind.RUN_CODE: CodeRunner(python_executable, timeout=code_timeout),
        })

    def resolve(self, name: str) -> ToolKind:
        return ToolKind.from_name(name)

    def dispatch(self, tool_use: ToolUse) -> ToolResult:
        """Run the executor for ``tool_use``.

        Raises UnknownToolError for names outside the catalog. Anything an
        executor raises is turned into an error result.
        """
        kind = self.resolve(tool_use.name)
        executor = self._executors[kind]
        try:
            result = executor(tool_use.id, tool_use.input)
        except Exception as e:
            _log.warning("%s raised %s: %s", kind.value, type(e).__name__, e)
            result = ToolResult.error(tool_use.id, f"{kind.value} error: {type(e).__name__}: {e}")
        if result.id != tool_use.id:
            raise ProtocolError(
                f"{kind.value} answered tool use {tool_use.id} with id {result.id}"
            )
        if result.is_error:
            _log.warning("%s failed: %s", kind.value, result.text)
        return result
