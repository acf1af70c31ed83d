"""Terminal presentation: rich rendering of assistant output and the input prompt."""

from __future__ import annotations

import json
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory, InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.styles import Style
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape

from .messages import ToolResult
from .structured import StructuredValue

THEME_ACCENT = "#7FA6D9"
THEME_PROMPT = "#B7C6D8"
AI_COLOR = "#58A6FF"
DIM = "#6E7681"
SUCCESS = "#57DB9C"
ERROR = "#F85149"

PTK_STYLE = Style.from_dict({
    "prompt": f"bold {THEME_PROMPT}",
})

INTRODUCTION = """\
[bold #7FA6D9]Bedrock Assistant[/bold #7FA6D9]
This assistant is powered by Claude on AWS Bedrock and can
  - chat
  - generate images
  - answer questions on files
  - run Python for analysis and math

Example queries:
  - Generate a cute hello world image in the test folder.
  - Generate 2 mathematics images of size 1024 * 1024 in the current folder.
  - Summarize the content in ./test/test.pdf.

[dim]Tools are not guaranteed to be used every time; rephrase and try again if needed.
You need AWS credentials and access to the configured models.
Press Esc or Ctrl+C to exit.[/dim]"""

FAREWELL = "[dim]Thank you for checking out Bedrock Assistant. Goodbye![/dim]"

MAX_RESULT_PREVIEW_LINES = 8


class TerminalSink:
    """Renders engine notifications to a rich console."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._streaming_text = False
        self._streaming_tool = False

    def _label(self) -> None:
        self.console.print(f"[bold {AI_COLOR}]AI:[/bold {AI_COLOR}]")

    def _inline(self, chunk: str, style: str) -> None:
        self.console.print(chunk, end="", style=style, markup=False,
                           highlight=False, soft_wrap=True)

    def assistant_text(self, text: str) -> None:
        self.console.print()
        self._label()
        self.console.print(Markdown(text))

    def assistant_delta(self, text: str) -> None:
        if not self._streaming_text:
            self.console.print()
            self._label()
            self._streaming_text = True
        self._inline(text, AI_COLOR)

    def assistant_done(self) -> None:
        if self._streaming_text or self._streaming_tool:
            self.console.print()
        self._streaming_text = False
        self._streaming_tool = False

    def tool_use(self, name: str, input: StructuredValue) -> None:
        rendered = escape(json.dumps(input, ensure_ascii=False))
        self.console.print(f"  [{THEME_ACCENT}]▸[/{THEME_ACCENT}] [bold]Tool used:[/bold] {name}")
        self.console.print(f"    [{DIM}]Tool input: {rendered}[/{DIM}]", markup=True, highlight=False)

    def tool_use_started(self, name: str) -> None:
        if self._streaming_text:
            self.console.print()
            self._streaming_text = False
        self.console.print(f"  [{THEME_ACCENT}]▸[/{THEME_ACCENT}] [bold]Tool used:[/bold] {name}")
        self._inline("    Tool input: ", DIM)
        self._streaming_tool = True

    def tool_input_delta(self, fragment: str) -> None:
        self._inline(fragment, DIM)

    def tool_result(self, name: str, result: ToolResult, elapsed: float) -> None:
        time_str = f" [#484F58]({elapsed:.1f}s)[/#484F58]" if elapsed >= 0.1 else ""
        lines = result.text.splitlines() or [""]
        if len(lines) > MAX_RESULT_PREVIEW_LINES:
            lines = lines[:MAX_RESULT_PREVIEW_LINES] + [f"... ({len(lines) - MAX_RESULT_PREVIEW_LINES} more)"]
        color, mark = (ERROR, "✗") if result.is_error else (SUCCESS, "✓")
        self.console.print(f"     [{color}]{mark} {name}[/{color}]{time_str}")
        for line in lines:
            self.console.print(f"       {line}", style=DIM, markup=False, highlight=False)

    def error(self, message: str) -> None:
        first_line = (message.strip().splitlines() or ["Unknown error"])[0]
        # A failed stream never reaches assistant_done.
        self.assistant_done()
        self.console.print(f"[{ERROR}]✗ {escape(first_line)}[/{ERROR}]", highlight=False)


def make_prompt_html() -> HTML:
    return HTML("<prompt>You: </prompt>")


def build_prompt_session(history_file: Optional[str] = None) -> PromptSession:
    """Line-editing prompt; Escape ends the session like Ctrl+D."""
    bindings = KeyBindings()

    @bindings.add("escape", eager=True)
    def _exit(event):
        event.app.exit(exception=EOFError())

    history = FileHistory(history_file) if history_file else InMemoryHistory()
    return PromptSession(
        history=history,
        multiline=False,
        key_bindings=bindings,
        style=PTK_STYLE,
    )
