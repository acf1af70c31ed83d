"""RUN_CODE tool: run model-written Python in a throwaway working directory."""

from __future__ import annotations

import os
import subprocess
import tempfile
from pathlib import Path

from ..errors import ToolExecutionError
from ..logger import get_logger
from ..messages import ToolResult
from ..structured import StructuredValue
from .base import as_object, require_string
from .schema import Property, PropertyType, ToolSchema, ToolSpec

_log = get_logger(__name__)

RUN_CODE_NAME = "RUN_CODE"
RUN_CODE_DESCRIPTION = (
    "Run Python code for data analysis, math or plotting and return its output. "
    "The code runs in a separate sandbox without access to the user's files; "
    "print anything you need to see."
)

RUN_CODE_SPEC = ToolSpec(
    name=RUN_CODE_NAME,
    description=RUN_CODE_DESCRIPTION,
    input_schema=ToolSchema.build(
        {"code": Property(PropertyType.STRING, "The complete Python program to run.")},
        ["code"],
    ),
)

MAX_STDOUT_CHARS = 8000
MAX_STDERR_CHARS = 4000

# Only these variables reach model-written code; credentials and tokens stay behind.
PASSTHROUGH_ENV = ("PATH", "LANG", "LC_ALL", "LC_CTYPE", "TZ", "SYSTEMROOT", "VIRTUAL_ENV")


def sandbox_env(workdir: str) -> dict:
    env = {key: os.environ[key] for key in PASSTHROUGH_ENV if key in os.environ}
    env.update({
        "HOME": workdir,
        "TMPDIR": workdir,
        "MPLBACKEND": "Agg",
        "PYTHONIOENCODING": "utf-8",
    })
    return env


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    half = limit // 2
    return text[:half] + "\n...(truncated)...\n" + text[-half:]


class CodeRunner:
    """Executor for RUN_CODE. Nonzero exit and timeouts are error results."""

    SCRIPT_NAME = "main.py"

    def __init__(self, python_executable: str = "python3", timeout: int = 30):
        self.python_executable = python_executable
        self.timeout = timeout

    def __call__(self, tool_use_id: str, input: StructuredValue) -> ToolResult:
        try:
            fields = as_object(RUN_CODE_NAME, input)
            code = require_string(RUN_CODE_NAME, fields, "code", "code to run")
        except ToolExecutionError as e:
            return ToolResult.error(tool_use_id, e.message)

        _log.debug("Running code (%d chars) with %s", len(code), self.python_executable)

        with tempfile.TemporaryDirectory(prefix="bedrock-assistant-") as workdir:
            script = Path(workdir) / self.SCRIPT_NAME
            script.write_text(code, encoding="utf-8")
            try:
                result = subprocess.run(
                    [self.python_executable, str(script)],
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    cwd=workdir,
                    env=sandbox_env(workdir),
                )
            except subprocess.TimeoutExpired:
                return ToolResult.error(tool_use_id, f"Timed out after {self.timeout}s")
            except OSError as e:
                return ToolResult.error(tool_use_id, f"{type(e).__name__}: {e}")

        parts = []
        if result.stdout:
            parts.append(_truncate(result.stdout, MAX_STDOUT_CHARS))
        if result.stderr:
            parts.append(f"[stderr]\n{_truncate(result.stderr, MAX_STDERR_CHARS)}")
        if result.returncode != 0:
            parts.append(f"[exit code: {result.returncode}]")

        output = "\n".join(parts).strip() or "(no output)"
        if result.returncode != 0:
            return ToolResult.error(tool_use_id, output)
        return ToolResult.success(tool_use_id, output)
