"""
bedrock-assistant: terminal chat with Bedrock models and local tools.

Command: bedrock-assistant [--non-stream]
"""

import os
import sys

import click
from rich.console import Console

from . import __version__
from .config import CONFIG_DIR, HISTORY_FILE, Config
from .engine import ConversationEngine
from .errors import ConfigError
from .llm import LLMAdapter
from .logger import setup_logger
from .tools import ToolRegistry
from .ui import FAREWELL, INTRODUCTION, TerminalSink, build_prompt_session, make_prompt_html

console = Console()


@click.command()
@click.option("--non-stream", "non_stream", is_flag=True,
              help="Wait for complete responses instead of streaming")
@click.option("--region", default=None, help="AWS region override")
@click.option("--chat-model", default=None, help="Chat model id override")
@click.option("--image-model", default=None, help="Image model id override")
@click.option("--project-dir", "-d", default=".", help="Directory holding .env / config")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.version_option(__version__, prog_name="bedrock-assistant")
def cli(non_stream, region, chat_model, image_model, project_dir, verbose):
    """Chat with a Bedrock model that can read files, generate images and run Python."""
    try:
        config = Config.load(project_dir)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if region:
        config.region = region
    if chat_model:
        config.chat_model_id = chat_model
    if image_model:
        config.image_model_id = image_model
    if non_stream:
        config.stream = False
    if verbose:
        config.verbose = True

    log = setup_logger("bedrock_assistant", verbose=config.verbose)
    log.info("config: %s", config.summary())

    llm = LLMAdapter(
        model=config.chat_model_id,
        image_model=config.image_model_id,
        region=config.region,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )
    try:
        tools = ToolRegistry.create(
            llm,
            python_executable=config.python_executable,
            code_timeout=config.code_timeout,
            image_prompt_suffix=config.image_prompt_suffix,
            open_images=config.open_images,
        )
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    engine = ConversationEngine(
        llm,
        tools,
        sink=TerminalSink(console),
        stream=config.stream,
        tool_parallelism=config.tool_parallelism,
    )

    console.print(INTRODUCTION)
    console.print(f"[dim]model: {config.chat_model_id} · region: {config.region} · "
                  f"{'streaming' if config.stream else 'non-streaming'}[/dim]\n")

    os.environ.setdefault("PROMPT_TOOLKIT_NO_CPR", "1")
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    session = build_prompt_session(str(HISTORY_FILE))

    while True:
        try:
            user_input = session.prompt(make_prompt_html()).strip()
        except (EOFError, KeyboardInterrupt):
            break

        if not user_input:
            console.print("[#E3B341]Enter something![/#E3B341]")
            continue

        try:
            with console.status("[#6E7681]Please wait…[/#6E7681]", spinner="dots") as status:
                if config.stream:
                    # Streamed output is printed as it arrives; the spinner would fight it.
                    status.stop()
                engine.submit(user_input)
        except KeyboardInterrupt:
            console.print("\n[dim]Interrupted.[/dim]")
            break
        console.print()

    console.print(FAREWELL)


if __name__ == "__main__":
    cli()
