"""LLM adapter via litellm: Bedrock chat turns, streamed events and image generation."""

import base64
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

import litellm
litellm.suppress_debug_info = True

from .errors import ProtocolError, TransportError
from .logger import get_logger
from .messages import ContentBlock, Document, Role, Text, ToolUse, Turn
from .streaming import (
    ContentBlockDelta, ContentBlockStart, MessageStart, MessageStop, Metadata,
    StopReason, StreamEvent, TextDelta, ToolUseDelta, ToolUseStart,
)
from .structured import dump_structured, parse_tool_input
from .tools.generate_image import (
    GENERATE_IMAGE_NAME, ImageGenerationRequest, ImageGenerationResponse,
)
from .tools.read_file import READ_FILE_NAME
from .tools.run_code import RUN_CODE_NAME
from .tools.schema import ToolConfiguration

_log = get_logger(__name__)

__all__ = ["LLMAdapter", "build_system_prompt", "turns_to_messages",
           "message_to_turn", "events_from_chunks"]


SYSTEM_PROMPT = f"""\
You are Claude, an AI assistant and an exceptional designer and software engineer with vast \
knowledge across multiple programming languages, frameworks, and best practices.
You strictly follow the following rules.

Your capabilities include:
1. Chat
2. Answer the user's questions on files
3. Create/Generate new images based on the user's prompt
4. Perform data analysis/math by running Python code to solve the user's task

You are familiar with the following python libraries:
- pandas
- numpy
- matplotlib
- seaborn
- scikit-learn
- diagrams, etc.

Choose the tool that BEST FITS the task.
For example, when asked for a graph of y=x, use {RUN_CODE_NAME} instead of {GENERATE_IMAGE_NAME}.

When asked to create/generate a new image:
- Use the {GENERATE_IMAGE_NAME} tool to generate an image.
- Verify the folder path to save the image in. If it is not provided, ask for it.

When asked to perform data analysis or math:
- If you need file content for the analysis, use the {READ_FILE_NAME} tool first.
- Use the {RUN_CODE_NAME} tool to run Python code for the analysis.

You can read files from local disk with the {READ_FILE_NAME} tool. Use it when:
- The user asks questions about existing files
- You need to examine the contents of an existing file

To use the tools provided:
- Strictly apply the provided tool specification.
- Never guess or make up information. If not enough information is provided, ask for it.
- Use a tool ONLY if you have all the required data.
- Code you write must not read data or files itself: it runs in a separate sandbox.
- Add constructive comments when writing code.
"""


def build_system_prompt(extra_instructions: Optional[str] = None) -> str:
    prompt = SYSTEM_PROMPT
    if extra_instructions:
        prompt += f"\n\n## Additional instructions:\n{extra_instructions}"
    return prompt


UNANSWERED_TOOL_USE = "Error: tool call was not executed"

_FINISH_REASONS = {
    "stop": StopReason.END_TURN,
    "end_turn": StopReason.END_TURN,
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "tool_use": StopReason.TOOL_USE,
    "length": StopReason.MAX_TOKENS,
    "max_tokens": StopReason.MAX_TOKENS,
    "stop_sequence": StopReason.STOP_SEQUENCE,
    "content_filter": StopReason.CONTENT_FILTERED,
}


# ── Turn <-> litellm message conversion ──────────

def _document_part(doc: Document) -> dict:
    encoded = base64.b64encode(doc.data).decode("ascii")
    return {
        "type": "file",
        "file": {
            "file_data": f"data:{doc.format.media_type};base64,{encoded}",
            "filename": f"{doc.name}.{doc.format.value}",
        },
    }


def turns_to_messages(system: str, turns: Sequence[Turn]) -> List[Dict[str, Any]]:
    """Render the transcript as OpenAI-style messages for litellm.

    A tool-result turn becomes one ``tool`` message per result, in order.
    Documents attached to results follow as a user message with file parts;
    litellm folds consecutive tool/user messages into one Bedrock user turn.
    Tool uses left unanswered (a request aborted before dispatch) get an
    error ``tool`` message so the service never sees an orphaned call.
    """
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system}]
    for position, turn in enumerate(turns):
        if turn.role is Role.ASSISTANT:
            msg: Dict[str, Any] = {"role": "assistant", "content": turn.text or None}
            uses = turn.tool_uses
            if uses:
                msg["tool_calls"] = [
                    {"id": use.id, "type": "function",
                     "function": {"name": use.name, "arguments": dump_structured(use.input)}}
                    for use in uses
                ]
            messages.append(msg)
            following = turns[position + 1] if position + 1 < len(turns) else None
            if uses and (following is None or not following.is_tool_result):
                messages.extend(
                    {"role": "tool", "tool_call_id": use.id, "content": UNANSWERED_TOOL_USE}
                    for use in uses
                )
        elif turn.is_tool_result:
            documents: List[Document] = []
            for result in turn.results:
                text = result.text
                if result.is_error:
                    text = f"Error: {text}"
                messages.append({"role": "tool", "tool_call_id": result.id, "content": text})
                documents.extend(c for c in result.content if isinstance(c, Document))
            if documents:
                messages.append({"role": "user", "content": [_document_part(d) for d in documents]})
        else:
            messages.append({"role": "user", "content": turn.text})
    return messages


def _content_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return str(content)


def message_to_turn(message: Any) -> Turn:
    """Build the assistant turn for a complete (non-streamed) response message."""
    if message is None:
        raise ProtocolError("Output is not a message")
    blocks: List[ContentBlock] = []
    text = _content_text(getattr(message, "content", None))
    if text:
        blocks.append(Text(text))
    for tc in getattr(message, "tool_calls", None) or []:
        function = getattr(tc, "function", None)
        if function is None or not getattr(tc, "id", None):
            raise ProtocolError("Tool call without id or function")
        blocks.append(ToolUse(
            id=tc.id,
            name=function.name or "",
            input=parse_tool_input(function.arguments or ""),
        ))
    if not blocks:
        blocks.append(Text(""))
    return Turn.assistant(*blocks)


def _usage_dict(usage: Any) -> Dict[str, int]:
    return {
        "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
        "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
        "total_tokens": getattr(usage, "total_tokens", 0) or 0,
    }


class _ToolCallBlocks:
    """Tool-call fragments keyed by the provider's index.

    A block opens once the call's id and name are known; some providers send
    them on a later fragment than the first. Argument fragments seen before
    that are held back and replayed in order.
    """

    def __init__(self):
        self.calls: Dict[int, Dict[str, Any]] = {}
        self.next_block = 1

    def __bool__(self) -> bool:
        return bool(self.calls)

    def add(self, tc: Any) -> Iterator[StreamEvent]:
        idx = getattr(tc, "index", None) or 0
        entry = self.calls.setdefault(idx, {"id": "", "name": "", "block": None, "args": []})
        if getattr(tc, "id", None):
            entry["id"] = tc.id
        function = getattr(tc, "function", None)
        if getattr(function, "name", None):
            entry["name"] = function.name
        arguments = getattr(function, "arguments", None)
        if arguments:
            entry["args"].append(arguments)
        yield from self._drain(entry)

    def close(self) -> Iterator[StreamEvent]:
        for idx, entry in self.calls.items():
            if entry["block"] is None and not entry["id"]:
                raise ProtocolError(f"Tool call {idx} was streamed without an id")
            yield from self._drain(entry, force=True)

    def _drain(self, entry: Dict[str, Any], force: bool = False) -> Iterator[StreamEvent]:
        if entry["block"] is None:
            if not entry["id"] or not (entry["name"] or force):
                return
            entry["block"] = self.next_block
            self.next_block += 1
            yield ContentBlockStart(entry["block"], ToolUseStart(entry["id"], entry["name"]))
        for fragment in entry["args"]:
            yield ContentBlockDelta(entry["block"], ToolUseDelta(fragment))
        entry["args"].clear()


def events_from_chunks(chunks: Iterable[Any]) -> Iterator[StreamEvent]:
    """Translate litellm stream chunks into typed stream events.

    Text is content block 0; each tool call gets the next block index once
    its id and name have arrived. A call that never receives an id is a
    ProtocolError.
    """
    started = False
    stopped = False
    tools = _ToolCallBlocks()

    for chunk in chunks:
        if not started:
            yield MessageStart()
            started = True

        choices = getattr(chunk, "choices", None)
        if choices:
            choice = choices[0]
            delta = getattr(choice, "delta", None)
            content = getattr(delta, "content", None)
            if content:
                yield ContentBlockDelta(0, TextDelta(content))

            for tc in getattr(delta, "tool_calls", None) or []:
                yield from tools.add(tc)

            finish = getattr(choice, "finish_reason", None)
            if finish and not stopped:
                yield from tools.close()
                reason = _FINISH_REASONS.get(finish, StopReason.END_TURN)
                if tools and reason is StopReason.END_TURN:
                    reason = StopReason.TOOL_USE
                stopped = True
                yield MessageStop(reason)

        usage = getattr(chunk, "usage", None)
        if usage:
            yield Metadata(_usage_dict(usage))

    if started and not stopped:
        yield from tools.close()
        yield MessageStop(StopReason.TOOL_USE if tools else StopReason.END_TURN)


class LLMAdapter:
    """Bedrock access through litellm. Region and model ids are passed per call,
    so nothing leaks into process-wide state."""

    def __init__(self, model: str, image_model: str, region: str,
                 temperature: float = 0.0, max_tokens: int = 4096):
        self.model = model
        self.image_model = image_model
        self.region = region
        self.temperature = temperature
        self.max_tokens = max_tokens

    @staticmethod
    def _route(model_id: str) -> str:
        return model_id if "/" in model_id else f"bedrock/{model_id}"

    def _kwargs(self, system: str, turns: Sequence[Turn],
                tool_config: Optional[ToolConfiguration]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self._route(self.model),
            "messages": turns_to_messages(system, turns),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "aws_region_name": self.region,
        }
        if tool_config and tool_config.tools:
            kwargs["tools"] = tool_config.to_wire()
            kwargs["tool_choice"] = "auto"
        return kwargs

    def converse(self, system: str, turns: Sequence[Turn],
                 tool_config: Optional[ToolConfiguration] = None) -> Turn:
        """Send the full transcript and return the complete assistant turn."""
        kwargs = self._kwargs(system, turns, tool_config)
        try:
            response = litellm.completion(**kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise TransportError(f"Auth failed. Check AWS credentials.\n{e}")
        except litellm.exceptions.APIConnectionError as e:
            raise TransportError(f"Cannot connect: model={self.model}, region={self.region}\n{e}")
        except Exception as e:
            raise TransportError(f"LLM error: {type(e).__name__}: {e}")

        choices = getattr(response, "choices", None)
        if not choices:
            raise ProtocolError("Error getting output")
        if getattr(response, "usage", None):
            _log.debug("usage: %s", _usage_dict(response.usage))
        return message_to_turn(getattr(choices[0], "message", None))

    def converse_stream(self, system: str, turns: Sequence[Turn],
                        tool_config: Optional[ToolConfiguration] = None) -> Iterator[StreamEvent]:
        """Send the full transcript and yield typed events as they arrive."""
        kwargs = self._kwargs(system, turns, tool_config)
        kwargs["stream"] = True
        try:
            chunks = litellm.completion(**kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise TransportError(f"Auth failed. Check AWS credentials.\n{e}")
        except Exception as e:
            raise TransportError(f"LLM error: {type(e).__name__}: {e}")

        try:
            yield from events_from_chunks(chunks)
        except ProtocolError:
            raise
        except Exception as e:
            raise TransportError(f"Stream interrupted: {type(e).__name__}: {e}")

    def generate_images(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        body = request.to_structured()
        try:
            response = litellm.image_generation(
                model=self._route(self.image_model),
                prompt=request.text,
                aws_region_name=self.region,
                taskType=body["taskType"],
                imageGenerationConfig=body.get("imageGenerationConfig", {}),
            )
        except Exception as e:
            raise TransportError(f"Image model error: {type(e).__name__}: {e}")

        images = [getattr(item, "b64_json", None) for item in getattr(response, "data", None) or []]
        try:
            return ImageGenerationResponse.from_structured({"images": images})
        except ValueError as e:
            raise ProtocolError(str(e))
